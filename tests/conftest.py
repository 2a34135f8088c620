# tests/conftest.py
"""
Shared fixtures for the pytest test suite.

The app is created once per test module on in-memory SQLite. Each test gets
db_session: a session bound to an outer transaction that is rolled back
afterwards, swapped in for db.session so every repository the registry
builds uses it.
"""
import os
import pytest
from unittest.mock import MagicMock
from app import create_app
from extensions import db
from outreach_database import Account, User
from services.transport import TransportResult, TransportError
from tests.fixtures.outreach_factories import ACCOUNT_ID


@pytest.fixture(scope='module')
def app():
    """
    A fixture that creates a new Flask application instance for a test module.
    """
    os.environ['FLASK_ENV'] = 'testing'

    app = create_app(config_name='testing', test_config={
        'SERVER_NAME': 'localhost.localdomain',
        'CONFLICT_AUTO_RESOLVE_HOURS': 24,
    })

    with app.app_context():
        db.create_all()

        account = Account(id=ACCOUNT_ID, name='Acme Heating', tier='basic', review_cooldown_days=30)
        other = Account(id=2, name='Other Co', tier='trial')
        user = User(id=1, email='owner@acme.example.com', account_id=ACCOUNT_ID)
        db.session.add_all([account, other, user])
        db.session.commit()

        yield app

        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='module')
def client(app):
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """
    A clean database session for each test function. Changes are rolled back
    when the test ends.
    """
    with app.app_context():
        connection = db.engine.connect()
        transaction = connection.begin()

        from sqlalchemy.orm import scoped_session, sessionmaker
        session = scoped_session(sessionmaker(bind=connection))
        old_session = db.session

        # SQLite can't nest transactions reliably: commit becomes flush
        def fake_commit():
            session.flush()

        session.commit = fake_commit
        db.session = session

        try:
            yield session
        finally:
            session.remove()
            if transaction.is_active:
                transaction.rollback()
            connection.close()
            db.session = old_session


@pytest.fixture
def fake_transport(app):
    """Records messages instead of sending them. Set .fail_for to make sends raise."""
    transport = MagicMock()
    transport.sent = []
    transport.fail_for = set()

    def send(message, idempotency_key):
        if message.to in transport.fail_for:
            raise TransportError(f"Provider rejected {message.to}", status_code=500)
        transport.sent.append((message, idempotency_key))
        return TransportResult(provider_id=f"provider-{len(transport.sent)}")

    transport.send.side_effect = send
    original = app.services._descriptors['transport']
    app.services.register('transport', service=transport)
    yield transport
    app.services._descriptors['transport'] = original


@pytest.fixture
def services(app, db_session, fake_transport):
    """Registry lookups for the current test session"""
    with app.app_context():
        yield app.services


