import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default='false'):
    return os.environ.get(name, default).lower() == 'true'


class Config:
    """Base configuration class."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # External automation runtime (webhook-triggered workflow engine)
    AUTOMATION_RUNTIME_URL = os.environ.get('AUTOMATION_RUNTIME_URL', 'http://localhost:5678')
    AUTOMATION_RUNTIME_API_PATH = os.environ.get('AUTOMATION_RUNTIME_API_PATH', '/api/v1')
    AUTOMATION_RUNTIME_API_KEY = os.environ.get('AUTOMATION_RUNTIME_API_KEY')
    AUTOMATION_RUNTIME_API_KEY_HEADER = os.environ.get('AUTOMATION_RUNTIME_API_KEY_HEADER', 'X-N8N-API-KEY')
    RUNTIME_REQUEST_TIMEOUT = int(os.environ.get('RUNTIME_REQUEST_TIMEOUT', '30'))
    RUNTIME_MAX_RETRIES = int(os.environ.get('RUNTIME_MAX_RETRIES', '0'))
    RUNTIME_RETRY_BACKOFF_SECONDS = float(os.environ.get('RUNTIME_RETRY_BACKOFF_SECONDS', '1.0'))

    # Channel delivery
    UNIPILE_API_KEY = os.environ.get('UNIPILE_API_KEY')
    UNIPILE_API_BASE_URL = os.environ.get('UNIPILE_API_BASE_URL', 'https://api.unipile.com')
    UNIPILE_ACCOUNT_ID = os.environ.get('UNIPILE_ACCOUNT_ID')
    RESEND_API_KEY = os.environ.get('RESEND_API_KEY')
    EMAIL_FROM = os.environ.get('EMAIL_FROM', 'outreach@example.com')
    SMS_GATEWAY_URL = os.environ.get('SMS_GATEWAY_URL')
    SMS_GATEWAY_TOKEN = os.environ.get('SMS_GATEWAY_TOKEN')
    DELIVERY_MAX_RETRIES = int(os.environ.get('DELIVERY_MAX_RETRIES', '0'))
    DELIVERY_RETRY_BACKOFF_SECONDS = int(os.environ.get('DELIVERY_RETRY_BACKOFF_SECONDS', '300'))  # 5 minutes
    STRICT_PERSONALIZATION = _env_bool('STRICT_PERSONALIZATION')

    # Scheduler
    SCHEDULER_POLL_INTERVAL = int(os.environ.get('SCHEDULER_POLL_INTERVAL', '30'))
    SCHEDULER_MAX_WORKERS = int(os.environ.get('SCHEDULER_MAX_WORKERS', '8'))
    SCHEDULER_BATCH_SIZE = int(os.environ.get('SCHEDULER_BATCH_SIZE', '100'))
    SCHEDULER_LEASE_SECONDS = int(os.environ.get('SCHEDULER_LEASE_SECONDS', '600'))  # 10 minutes
    START_SCHEDULER = _env_bool('START_SCHEDULER')

    # Execution status cache
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    STATUS_CACHE_TTL = int(os.environ.get('STATUS_CACHE_TTL', '30'))

    # CORS configuration
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

    # Logging configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///outreach_automation.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = True

    TESTING = False


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False

    # Production database (PostgreSQL)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SECRET_KEY = os.environ.get('SECRET_KEY')

    # Production CORS (more restrictive)
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '').split(',')

    @classmethod
    def validate_config(cls):
        """Validate production configuration."""
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise ValueError("DATABASE_URL environment variable is required for production")

        if not cls.SECRET_KEY:
            raise ValueError("SECRET_KEY environment variable is required for production")

        if not cls.AUTOMATION_RUNTIME_API_KEY:
            raise ValueError("AUTOMATION_RUNTIME_API_KEY environment variable is required for production")

        if not cls.CORS_ORIGINS or cls.CORS_ORIGINS == ['']:
            raise ValueError("CORS_ORIGINS environment variable is required for production")


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTOMATION_RUNTIME_URL = 'http://runtime.test'
    AUTOMATION_RUNTIME_API_KEY = 'test-runtime-key'
    START_SCHEDULER = False
    SCHEDULER_MAX_WORKERS = 1
    REDIS_URL = None


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
