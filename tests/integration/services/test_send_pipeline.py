"""
Ad-hoc and scheduled sends against the database: ledger rows, quota
accounting and scheduled send state changes.
"""

import pytest
from datetime import timedelta
from outreach_database import Customer, ScheduledSend, SendLog
from utils.datetime_utils import ensure_utc
from tests.fixtures.outreach_factories import NOW, create_customer, create_template

TRIAL_ACCOUNT_ID = 2


@pytest.fixture
def send_orchestrator(services):
    return services.get('send_orchestrator')


@pytest.fixture
def scheduled_send_service(services):
    return services.get('scheduled_send')


def add_consumed_sends(session, account_id, customer_id, count, when=NOW):
    for _ in range(count):
        session.add(SendLog(
            account_id=account_id,
            customer_id=customer_id,
            channel='email',
            status='sent',
            created_at=when,
            completed_at=when
        ))
    session.flush()


class TestSendBatch:

    def test_ledger_rows_and_customer_counters(self, db_session, send_orchestrator, fake_transport):
        template = create_template(db_session)
        first = create_customer(db_session, email='first@example.com')
        second = create_customer(db_session, email='second@example.com')

        result = send_orchestrator.send_batch(1, [first.id, second.id], template_id=template.id, now=NOW)

        assert result.data.sent == 2
        logs = db_session.query(SendLog).order_by(SendLog.id).all()
        assert [log.status for log in logs] == ['sent', 'sent']
        assert [log.idempotency_key for log in logs] == [f"send-{log.id}" for log in logs]
        assert [key for _, key in fake_transport.sent] == [log.idempotency_key for log in logs]
        message, _ = fake_transport.sent[0]
        assert message.subject == 'Thanks Jamie Rivera'
        assert message.body == 'Hi Jamie Rivera, how did Acme Heating do?'

        db_session.expire_all()
        customer = db_session.get(Customer, first.id)
        assert customer.send_count == 1
        assert ensure_utc(customer.last_sent_at) == NOW

    def test_cooldown_applies_to_the_next_batch(self, db_session, send_orchestrator, fake_transport):
        customer = create_customer(db_session)
        send_orchestrator.send_batch(1, [customer.id], now=NOW)

        result = send_orchestrator.send_batch(1, [customer.id], now=NOW + timedelta(days=5))

        assert result.data.skipped == 1
        assert result.data.details[0].days_remaining == 9
        assert len(fake_transport.sent) == 1

    def test_other_accounts_customer_is_not_found(self, db_session, send_orchestrator, fake_transport):
        outsider = create_customer(db_session, account_id=TRIAL_ACCOUNT_ID)

        result = send_orchestrator.send_batch(1, [outsider.id], now=NOW)

        assert result.data.details[0].reason == 'not_found'
        assert fake_transport.sent == []

    def test_failed_send_keeps_an_audit_row(self, db_session, send_orchestrator, fake_transport):
        customer = create_customer(db_session, email='broken@example.com')
        fake_transport.fail_for.add('broken@example.com')

        result = send_orchestrator.send_batch(1, [customer.id], now=NOW)

        assert result.data.failed == 1
        log = db_session.query(SendLog).one()
        assert log.status == 'failed'
        assert ensure_utc(log.completed_at) == NOW


class TestQuota:

    def test_batch_larger_than_remaining_is_rejected(self, db_session, send_orchestrator, fake_transport):
        customers = [create_customer(db_session, account_id=TRIAL_ACCOUNT_ID) for _ in range(3)]
        add_consumed_sends(db_session, TRIAL_ACCOUNT_ID, customers[0].id, 23)

        result = send_orchestrator.send_batch(TRIAL_ACCOUNT_ID, [c.id for c in customers], now=NOW)

        assert result.error_code == 'QUOTA_EXCEEDED'
        assert result.metadata['remaining'] == 2
        assert fake_transport.sent == []

    def test_last_units_can_be_used_then_quota_is_exhausted(self, db_session, send_orchestrator, fake_transport):
        customers = [create_customer(db_session, account_id=TRIAL_ACCOUNT_ID) for _ in range(3)]
        add_consumed_sends(db_session, TRIAL_ACCOUNT_ID, customers[0].id, 23)

        result = send_orchestrator.send_batch(TRIAL_ACCOUNT_ID, [c.id for c in customers[:2]], now=NOW)
        assert result.data.sent == 2

        refused = send_orchestrator.send_one(TRIAL_ACCOUNT_ID, customers[2].id, now=NOW)
        assert refused.error_code == 'QUOTA_EXCEEDED'
        assert refused.metadata['remaining'] == 0

    def test_failed_and_last_month_sends_do_not_count(self, db_session, send_orchestrator, fake_transport):
        customer = create_customer(db_session, account_id=TRIAL_ACCOUNT_ID)
        add_consumed_sends(db_session, TRIAL_ACCOUNT_ID, customer.id, 25, when=NOW - timedelta(days=10))
        db_session.add(SendLog(account_id=TRIAL_ACCOUNT_ID, customer_id=customer.id, channel='email',
                               status='failed', created_at=NOW))
        db_session.flush()

        assert send_orchestrator.send_one(TRIAL_ACCOUNT_ID, customer.id, now=NOW).is_success

    def test_quota_exhausted_touch_is_deferred_to_next_month(self, db_session, services, fake_transport):
        from tests.fixtures.outreach_factories import create_campaign, create_job
        from outreach_database import CampaignEnrollment

        customer = create_customer(db_session, account_id=TRIAL_ACCOUNT_ID)
        create_campaign(db_session, account_id=TRIAL_ACCOUNT_ID)
        job = create_job(db_session, customer)
        enrollment_service = services.get('enrollment')
        enrollment_id = enrollment_service.evaluate_job(job.id, now=NOW).data.enrollment_id
        add_consumed_sends(db_session, TRIAL_ACCOUNT_ID, customer.id, 25)

        stats = enrollment_service.process_due_touches(now=NOW + timedelta(hours=24))

        assert stats['deferred'] == 1
        assert fake_transport.sent == []
        db_session.expire_all()
        enrollment = db_session.get(CampaignEnrollment, enrollment_id)
        assert enrollment.current_touch == 1
        assert ensure_utc(enrollment.next_touch_due_at).isoformat() == '2026-04-01T00:00:00+00:00'


class TestResend:

    def test_resends_failed_messages(self, db_session, send_orchestrator, fake_transport):
        customer = create_customer(db_session, email='flaky@example.com')
        fake_transport.fail_for.add('flaky@example.com')
        send_orchestrator.send_batch(1, [customer.id], now=NOW)
        failed_log = db_session.query(SendLog).one()

        fake_transport.fail_for.clear()
        result = send_orchestrator.resend(1, [failed_log.id], now=NOW + timedelta(minutes=5))

        assert result.data == {'total_success': 1, 'total_failed': 0}
        assert db_session.query(SendLog).filter_by(status='sent').count() == 1

    def test_sent_messages_are_not_resendable(self, db_session, send_orchestrator, fake_transport):
        customer = create_customer(db_session)
        send_orchestrator.send_batch(1, [customer.id], now=NOW)
        log = db_session.query(SendLog).one()

        assert send_orchestrator.resend(1, [log.id], now=NOW).error_code == 'NOT_FOUND'

    def test_ambiguous_pending_sends(self, db_session, send_orchestrator):
        customer = create_customer(db_session)
        db_session.add(SendLog(account_id=1, customer_id=customer.id, channel='email',
                               status='pending', created_at=NOW - timedelta(minutes=30)))
        db_session.add(SendLog(account_id=1, customer_id=customer.id, channel='email',
                               status='pending', created_at=NOW - timedelta(minutes=2)))
        db_session.flush()

        sends = send_orchestrator.find_ambiguous_sends(1, older_than_minutes=15, now=NOW)

        assert len(sends) == 1
        assert sends[0]['customer_id'] == customer.id
        assert sends[0]['created_at'] == (NOW - timedelta(minutes=30)).isoformat()


class TestScheduledSends:

    def test_due_send_runs_as_a_batch(self, db_session, scheduled_send_service, fake_transport):
        customers = [create_customer(db_session, email=f'c{n}@example.com') for n in range(2)]
        scheduled = scheduled_send_service.schedule(
            1, [c.id for c in customers], NOW + timedelta(hours=1), now=NOW
        ).data

        early = scheduled_send_service.process_due(now=NOW + timedelta(minutes=30))
        assert early['processed'] == 0

        stats = scheduled_send_service.process_due(now=NOW + timedelta(hours=1))

        assert stats['completed'] == 1
        assert len(fake_transport.sent) == 2
        db_session.expire_all()
        row = db_session.get(ScheduledSend, scheduled.id)
        assert row.status == 'completed'
        assert row.result == {'sent': 2, 'skipped': 0, 'failed': 0}

        again = scheduled_send_service.process_due(now=NOW + timedelta(hours=2))
        assert again['processed'] == 0
        assert len(fake_transport.sent) == 2

    def test_bulk_cancel_is_all_or_nothing(self, db_session, scheduled_send_service, fake_transport):
        customer = create_customer(db_session)
        first = scheduled_send_service.schedule(1, [customer.id], NOW + timedelta(hours=1), now=NOW).data
        second = scheduled_send_service.schedule(1, [customer.id], NOW + timedelta(hours=3), now=NOW).data
        scheduled_send_service.process_due(now=NOW + timedelta(hours=2))

        result = scheduled_send_service.bulk_cancel(1, [first.id, second.id])

        assert result.error_code == 'INVALID_STATE'
        assert result.metadata == {'ids': [first.id]}
        db_session.expire_all()
        assert db_session.get(ScheduledSend, second.id).status == 'pending'

        assert scheduled_send_service.bulk_cancel(1, [second.id]).data == {'cancelled': 1}
        db_session.expire_all()
        assert db_session.get(ScheduledSend, second.id).status == 'cancelled'

    def test_stale_claim_is_released_and_run(self, db_session, scheduled_send_service, fake_transport):
        customer = create_customer(db_session)
        scheduled = scheduled_send_service.schedule(1, [customer.id], NOW + timedelta(hours=1), now=NOW).data
        scheduled.claimed_at = NOW + timedelta(hours=1)
        db_session.flush()

        stats = scheduled_send_service.process_due(now=NOW + timedelta(hours=1, minutes=20))

        assert stats['released'] == 1
        assert stats['completed'] == 1
        assert len(fake_transport.sent) == 1

    def test_bulk_reschedule(self, db_session, scheduled_send_service):
        customer = create_customer(db_session)
        scheduled = scheduled_send_service.schedule(1, [customer.id], NOW + timedelta(hours=1), now=NOW).data
        new_time = NOW + timedelta(days=2)

        result = scheduled_send_service.bulk_reschedule(1, [scheduled.id], new_time, now=NOW)

        assert result.data == {'rescheduled': 1}
        db_session.expire_all()
        assert ensure_utc(db_session.get(ScheduledSend, scheduled.id).scheduled_for) == new_time

    def test_other_accounts_ids_are_not_found(self, db_session, scheduled_send_service):
        customer = create_customer(db_session)
        scheduled = scheduled_send_service.schedule(1, [customer.id], NOW + timedelta(hours=1), now=NOW).data

        result = scheduled_send_service.bulk_cancel(TRIAL_ACCOUNT_ID, [scheduled.id])

        assert result.error_code == 'NOT_FOUND'
