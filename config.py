import os
import secrets
from dotenv import load_dotenv
from typing import Optional

# Find the absolute path of the root directory
basedir = os.path.abspath(os.path.dirname(__file__))

# Load the .env file from the root directory
load_dotenv(os.path.join(basedir, '.env'))


def _env_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    return int(value) if value else default


def _env_bool(key: str, default: bool = False) -> bool:
    return os.environ.get(key, str(default)).lower() in ('1', 'true', 'yes')


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid"""
    pass


class Config:
    """
    Base configuration class. Contains default configuration settings
    and settings applicable to all environments.
    """
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)
    FLASK_ENV = os.environ.get('FLASK_ENV')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    @classmethod
    def validate_required_config(cls) -> None:
        """Validate that all required configuration is present"""
        # Skip validation in testing environment or during migrations
        if os.environ.get('FLASK_ENV') == 'testing' or os.environ.get('SKIP_ENV_VALIDATION'):
            return

        required_vars = [] if os.environ.get('DATABASE_URL') else ['POSTGRES_URI']
        missing_vars = [var for var in required_vars if not os.environ.get(var)]
        if missing_vars:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

    @staticmethod
    def get_required_env(key: str) -> str:
        """Get required environment variable or raise error"""
        value = os.environ.get(key)
        if not value:
            raise ConfigurationError(f"Required environment variable {key} is not set")
        return value

    # Database settings
    SQLALCHEMY_DATABASE_URI = os.environ.get('POSTGRES_URI') or \
        'sqlite:///' + os.path.join(basedir, 'outreach.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # OpenPhone API (SMS transport)
    OPENPHONE_API_KEY = os.environ.get('OPENPHONE_API_KEY')
    OPENPHONE_PHONE_NUMBER_ID = os.environ.get('OPENPHONE_PHONE_NUMBER_ID')
    OPENPHONE_BASE_URL = os.environ.get('OPENPHONE_BASE_URL', 'https://api.openphone.com/v1')
    OPENPHONE_TIMEOUT = _env_int('OPENPHONE_TIMEOUT', 15)

    # Celery picks these up through the uppercase prefix mapping
    CELERY_BROKER_URL = os.environ.get('REDIS_URL') or 'redis://redis:6379/0'
    CELERY_RESULT_BACKEND = os.environ.get('REDIS_URL') or 'redis://redis:6379/0'

    # Mail settings (email transport)
    MAIL_SERVER = os.environ.get('MAIL_SERVER')
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 587)  # Handle empty string
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS', 'true').lower() == 'true'
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER', 'reviews@example.com')

    # Outreach settings
    SEND_COOLDOWN_DAYS = _env_int('SEND_COOLDOWN_DAYS', 14)
    MAX_BATCH_SIZE = _env_int('MAX_BATCH_SIZE', 25)
    MAX_BULK_SCHEDULE_SIZE = _env_int('MAX_BULK_SCHEDULE_SIZE', 50)
    MONTHLY_SEND_LIMITS = {
        'trial': _env_int('MONTHLY_SEND_LIMIT_TRIAL', 25),
        'basic': _env_int('MONTHLY_SEND_LIMIT_BASIC', 200),
        'pro': _env_int('MONTHLY_SEND_LIMIT_PRO', 500),
    }
    # Reserve quota atomically instead of counting the ledger before each batch
    STRICT_QUOTA_ENFORCEMENT = _env_bool('STRICT_QUOTA_ENFORCEMENT')
    QUEUE_AFTER_GAP_DAYS = _env_int('QUEUE_AFTER_GAP_DAYS', 7)
    CONFLICT_AUTO_RESOLVE_HOURS = _env_int('CONFLICT_AUTO_RESOLVE_HOURS', 24)  # 0 disables
    QUIET_HOURS_START = _env_int('QUIET_HOURS_START', 21)
    QUIET_HOURS_END = _env_int('QUIET_HOURS_END', 8)
    DEFAULT_TIMEZONE = os.environ.get('DEFAULT_TIMEZONE', 'America/New_York')
    SCHEDULED_SEND_CLAIM_TIMEOUT_MINUTES = _env_int('SCHEDULED_SEND_CLAIM_TIMEOUT_MINUTES', 10)
    AMBIGUOUS_SEND_MINUTES = _env_int('AMBIGUOUS_SEND_MINUTES', 15)
    TOUCH_BATCH_LIMIT = _env_int('TOUCH_BATCH_LIMIT', 200)

    # Security settings
    SESSION_COOKIE_SECURE = False  # Will be overridden in production
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    JSON_SORT_KEYS = False

    @classmethod
    def init_app(cls, app):
        """Initialize application with this config"""
        pass


class DevelopmentConfig(Config):
    """Development environment configuration"""
    DEBUG = True
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        Config.SQLALCHEMY_DATABASE_URI

    # Don't email real customers from a laptop
    MAIL_SUPPRESS_SEND = True


class TestingConfig(Config):
    """Testing environment configuration"""
    TESTING = True
    DEBUG = True

    # Use in-memory SQLite for tests
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    # Disable login requirement for testing
    LOGIN_DISABLED = True

    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = 'reviews@test.example.com'

    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'

    @classmethod
    def init_app(cls, app):
        """Testing-specific initialization"""
        # Foreign keys stay off for SQLite so fixtures can build rows in any order
        from sqlalchemy import event
        from sqlalchemy.engine import Engine

        @event.listens_for(Engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            if 'sqlite' in str(dbapi_connection):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=OFF")
                cursor.close()


class ProductionConfig(Config):
    """Production environment configuration"""
    DEBUG = False
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', '')

    SESSION_COOKIE_SECURE = True

    REDIS_URL = os.environ.get('REDIS_URL', '')
    CELERY_BROKER_URL = os.environ.get('REDIS_URL', '')
    CELERY_RESULT_BACKEND = os.environ.get('REDIS_URL', '')

    # If using rediss:// (SSL), append required parameters
    if CELERY_BROKER_URL.startswith('rediss://') and 'ssl_cert_reqs' not in CELERY_BROKER_URL:
        separator = '&' if '?' in CELERY_BROKER_URL else '?'
        ssl_params = f"{separator}ssl_cert_reqs=CERT_NONE"
        CELERY_BROKER_URL += ssl_params
        CELERY_RESULT_BACKEND += ssl_params

    @classmethod
    def init_app(cls, app):
        """Production-specific initialization"""
        if not cls.SQLALCHEMY_DATABASE_URI:
            app.config['SQLALCHEMY_DATABASE_URI'] = cls.get_required_env('POSTGRES_URI')

        cls.validate_required_config()

        # Log to syslog in production
        import logging
        from logging.handlers import SysLogHandler
        syslog_handler = SysLogHandler()
        syslog_handler.setLevel(logging.WARNING)
        app.logger.addHandler(syslog_handler)


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> type[Config]:
    """Get configuration class based on environment"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    return config.get(config_name, DevelopmentConfig)
