"""
OpsDesk - Configuration
Environment-based configuration for different deployment stages
"""
import os
from datetime import timedelta


def _normalize_db_url(db_url):
    """Render/Heroku hand out postgres:// URLs; SQLAlchemy wants the psycopg v3 driver"""
    if db_url.startswith('postgres://'):
        return db_url.replace('postgres://', 'postgresql+psycopg://', 1)
    if db_url.startswith('postgresql://'):
        return db_url.replace('postgresql://', 'postgresql+psycopg://', 1)
    return db_url


class BaseConfig:
    """Base configuration"""

    # Flask - Secret key (required in production)
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Warn if using dev key in production-like environment
    _is_production = os.environ.get('RENDER') or os.environ.get('FLASK_ENV') == 'production'
    if SECRET_KEY == 'dev-secret-key-change-in-production' and _is_production:
        import warnings
        warnings.warn("SECRET_KEY is using default dev value in production! Set SECRET_KEY env var.")

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Get database URI, handling Render's postgres:// prefix"""
        db_url = os.environ.get('DATABASE_URL', '')
        if db_url:
            return _normalize_db_url(db_url)

        # Fallback to SQLite for local development
        return 'sqlite:///opsdesk.db'

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Rate limiting
    RATE_LIMIT_ENABLED = os.environ.get('RATE_LIMIT_ENABLED', 'true').lower() == 'true'

    # JWT Auth
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get('JWT_EXPIRES_HOURS', '24')))

    # Activity feed broadcast (optional, e.g. a pub/sub relay)
    ACTIVITY_WEBHOOK_URL = os.environ.get('ACTIVITY_WEBHOOK_URL', '')
    ACTIVITY_WEBHOOK_TIMEOUT = int(os.environ.get('ACTIVITY_WEBHOOK_TIMEOUT', '5'))

    # Task generation defaults
    POSTING_DEFAULT_FREQUENCY = int(os.environ.get('POSTING_DEFAULT_FREQUENCY', '4'))
    TASK_DEFAULT_DUE_DAYS = int(os.environ.get('TASK_DEFAULT_DUE_DAYS', '7'))
    MIGRATION_CHUNK_SIZE = int(os.environ.get('MIGRATION_CHUNK_SIZE', '100'))


class DevelopmentConfig(BaseConfig):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(BaseConfig):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        return _normalize_db_url(os.environ.get('DATABASE_URL', ''))


class TestingConfig(BaseConfig):
    """Testing configuration"""
    DEBUG = True
    TESTING = True
    RATE_LIMIT_ENABLED = False
    ACTIVITY_WEBHOOK_URL = ''
    JWT_SECRET_KEY = 'test-jwt-secret'
    SQLALCHEMY_ENGINE_OPTIONS = {}

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        """Use TEST_DATABASE_URL if set, otherwise in-memory SQLite"""
        db_url = os.environ.get('TEST_DATABASE_URL', '')
        if db_url:
            return _normalize_db_url(db_url)
        return 'sqlite:///:memory:'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
