# app.py

from flask import Flask, g, request, jsonify
from flask_migrate import Migrate
from config import get_config
from extensions import db, login_manager, mail
import os
import uuid
from werkzeug.middleware.proxy_fix import ProxyFix
from logging_config import setup_logging, get_logger

# Configure logging as early as possible
setup_logging(app_name="review-outreach", log_level=os.environ.get('LOG_LEVEL', 'INFO'))
logger = get_logger(__name__)


# Configure Sentry for production error tracking
def init_sentry():
    """Initialize Sentry error tracking in production."""
    sentry_dsn = os.environ.get('SENTRY_DSN')
    if sentry_dsn and os.environ.get('FLASK_ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
        from sentry_sdk.integrations.celery import CeleryIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[
                FlaskIntegration(transaction_style='endpoint'),
                SqlalchemyIntegration(),
                CeleryIntegration()
            ],
            traces_sample_rate=0.1,
            environment=os.environ.get('FLASK_ENV', 'development'),
            release=os.environ.get('GIT_SHA', 'unknown')
        )
        logger.info("Sentry error tracking initialized")


init_sentry()


def create_app(config_name=None, test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)
    config_class.init_app(app)

    if test_config:
        app.config.update(test_config)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    db.init_app(app)
    Migrate(app, db)
    mail.init_app(app)

    app.services = _build_registry(app)

    login_manager.init_app(app)

    from outreach_database import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @app.before_request
    def before_request():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        logger.info("Request started", request_id=g.request_id)

    @app.after_request
    def after_request(response):
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        logger.info("Request completed",
                    request_id=getattr(g, 'request_id', None),
                    status_code=response.status_code)
        return response

    @app.errorhandler(500)
    def internal_error(error):
        logger.error("Internal server error",
                     request_id=getattr(g, 'request_id', None),
                     error=str(error))
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    @app.errorhandler(404)
    def not_found_error(error):
        logger.warning("Not found", request_id=getattr(g, 'request_id', None))
        return jsonify({'success': False, 'error': 'Not found', 'error_code': 'NOT_FOUND'}), 404

    @app.route('/health')
    def health_check():
        """Health check endpoint for monitoring - no auth required"""
        from sqlalchemy import text
        health_status = {'status': 'healthy', 'service': 'review-outreach'}

        try:
            db.session.execute(text('SELECT 1'))
            health_status['database'] = 'connected'
        except Exception as e:
            health_status['database'] = 'error'
            health_status['status'] = 'degraded'
            logger.error(f"Health check database error: {e}")

        return jsonify(health_status), 200 if health_status['status'] == 'healthy' else 503

    from routes.campaign_routes import campaign_bp
    from routes.enrollment_routes import enrollment_bp
    from routes.send_routes import send_bp

    app.register_blueprint(campaign_bp, url_prefix='/api/campaigns')
    app.register_blueprint(enrollment_bp, url_prefix='/api')
    app.register_blueprint(send_bp, url_prefix='/api')

    from scripts import commands
    commands.init_app(app)

    return app


def _build_registry(app):
    """
    Wire repositories and services.

    Everything touching the database is transient so each lookup wraps the
    current db.session. The transport is a singleton: it holds the mail
    client and a pooled HTTP session.
    """
    from services.service_registry import ServiceRegistry, ServiceLifecycle
    registry = ServiceRegistry()
    config = app.config
    transient = ServiceLifecycle.TRANSIENT

    registry.register_factory('db_session', lambda: db.session, lifecycle=transient)

    repositories = {
        'account_repository': 'AccountRepository',
        'quota_usage_repository': 'QuotaUsageRepository',
        'customer_repository': 'CustomerRepository',
        'job_repository': 'JobRepository',
        'campaign_repository': 'CampaignRepository',
        'enrollment_repository': 'EnrollmentRepository',
        'send_log_repository': 'SendLogRepository',
        'scheduled_send_repository': 'ScheduledSendRepository',
        'message_template_repository': 'MessageTemplateRepository',
    }
    for name, class_name in repositories.items():
        registry.register_factory(
            name,
            lambda db_session, class_name=class_name: _create_repository(class_name, db_session),
            lifecycle=transient,
            dependencies=['db_session']
        )

    registry.register_factory(
        'transport',
        lambda: _create_transport(config)
    )
    registry.register_factory(
        'template_resolver',
        _create_template_resolver,
        lifecycle=transient,
        dependencies=['message_template_repository']
    )
    registry.register_factory(
        'send_log_ledger',
        _create_send_log_ledger,
        lifecycle=transient,
        dependencies=['send_log_repository']
    )
    registry.register_factory(
        'quota',
        lambda account_repository, send_log_repository, quota_usage_repository: _create_quota_service(
            config, account_repository, send_log_repository, quota_usage_repository
        ),
        lifecycle=transient,
        dependencies=['account_repository', 'send_log_repository', 'quota_usage_repository']
    )
    registry.register_factory(
        'touch_scheduler',
        _create_touch_scheduler,
        lifecycle=transient,
        dependencies=['send_log_ledger']
    )
    registry.register_factory(
        'send_orchestrator',
        lambda **deps: _create_send_orchestrator(config, **deps),
        lifecycle=transient,
        dependencies=['account_repository', 'customer_repository', 'send_log_repository',
                      'quota', 'send_log_ledger', 'template_resolver', 'transport']
    )
    registry.register_factory(
        'campaign',
        _create_campaign_service,
        lifecycle=transient,
        dependencies=['campaign_repository', 'enrollment_repository']
    )
    registry.register_factory(
        'enrollment',
        lambda **deps: _create_enrollment_service(config, **deps),
        lifecycle=transient,
        dependencies=['job_repository', 'account_repository', 'customer_repository',
                      'enrollment_repository', 'campaign', 'touch_scheduler',
                      'send_log_ledger', 'send_orchestrator']
    )
    registry.register_factory(
        'scheduled_send',
        lambda scheduled_send_repository, send_orchestrator: _create_scheduled_send_service(
            config, scheduled_send_repository, send_orchestrator
        ),
        lifecycle=transient,
        dependencies=['scheduled_send_repository', 'send_orchestrator']
    )

    errors = registry.validate_dependencies()
    if errors:
        for error in errors:
            logger.error(error)
        raise RuntimeError(f"Service registry has {len(errors)} missing dependencies")
    logger.debug(f"Service initialization order: {registry.get_initialization_order()}")

    return registry


# Service Factory Functions
# These are only called when the service is first requested

def _create_repository(class_name, db_session):
    import repositories
    return getattr(repositories, class_name)(db_session)


def _create_transport(config):
    """Email through Flask-Mail, SMS through OpenPhone"""
    from services.transport import ChannelTransport, EmailTransport, OpenPhoneSmsTransport
    logger.info("Initializing ChannelTransport")
    return ChannelTransport(
        email_transport=EmailTransport(mail, default_sender=config.get('MAIL_DEFAULT_SENDER')),
        sms_transport=OpenPhoneSmsTransport(
            api_key=config.get('OPENPHONE_API_KEY'),
            from_number_id=config.get('OPENPHONE_PHONE_NUMBER_ID'),
            base_url=config.get('OPENPHONE_BASE_URL', 'https://api.openphone.com/v1'),
            timeout=config.get('OPENPHONE_TIMEOUT', 15)
        )
    )


def _create_template_resolver(message_template_repository):
    from services.template_resolver import TemplateResolver
    return TemplateResolver(message_template_repository)


def _create_send_log_ledger(send_log_repository):
    from services.send_log_ledger import SendLogLedger
    return SendLogLedger(send_log_repository)


def _create_quota_service(config, account_repository, send_log_repository, quota_usage_repository):
    from services.quota_service import QuotaService
    return QuotaService(
        account_repository=account_repository,
        send_log_repository=send_log_repository,
        quota_usage_repository=quota_usage_repository,
        monthly_limits=config.get('MONTHLY_SEND_LIMITS'),
        strict=config.get('STRICT_QUOTA_ENFORCEMENT', False)
    )


def _create_touch_scheduler(send_log_ledger):
    from services.touch_scheduler import TouchScheduler
    return TouchScheduler(send_log_ledger)


def _create_send_orchestrator(config, quota, **deps):
    from services.send_orchestrator import SendOrchestrator
    return SendOrchestrator(
        quota_service=quota,
        send_cooldown_days=config.get('SEND_COOLDOWN_DAYS', 14),
        max_batch_size=config.get('MAX_BATCH_SIZE', 25),
        quiet_hours_start=config.get('QUIET_HOURS_START', 21),
        quiet_hours_end=config.get('QUIET_HOURS_END', 8),
        **deps
    )


def _create_campaign_service(campaign_repository, enrollment_repository):
    from services.campaign_service import CampaignService
    return CampaignService(campaign_repository, enrollment_repository)


def _create_enrollment_service(config, campaign, **deps):
    from services.enrollment_service import EnrollmentService
    return EnrollmentService(
        campaign_service=campaign,
        queue_after_gap_days=config.get('QUEUE_AFTER_GAP_DAYS', 7),
        conflict_auto_resolve_hours=config.get('CONFLICT_AUTO_RESOLVE_HOURS', 24),
        **deps
    )


def _create_scheduled_send_service(config, scheduled_send_repository, send_orchestrator):
    from services.scheduled_send_service import ScheduledSendService
    return ScheduledSendService(
        scheduled_send_repository=scheduled_send_repository,
        send_orchestrator=send_orchestrator,
        max_bulk_size=config.get('MAX_BULK_SCHEDULE_SIZE', 50),
        claim_timeout_minutes=config.get('SCHEDULED_SEND_CLAIM_TIMEOUT_MINUTES', 10)
    )


if __name__ == '__main__':
    app = create_app()
    app.run(debug=True)
