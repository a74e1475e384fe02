"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'fulfillment')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'fulfillment')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'fulfillment')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # Heroku/Render style URLs
    if DATABASE_URL.startswith('postgres://'):
        DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    SQLALCHEMY_POOL_SIZE = int(os.getenv('SQLALCHEMY_POOL_SIZE', '10'))
    SQLALCHEMY_MAX_OVERFLOW = int(os.getenv('SQLALCHEMY_MAX_OVERFLOW', '20'))
    SQLALCHEMY_EXPIRE_ON_COMMIT = os.getenv('SQLALCHEMY_EXPIRE_ON_COMMIT', 'true').lower() == 'true'

    # Stock defaults
    DEFAULT_REORDER_LEVEL = int(os.getenv('DEFAULT_REORDER_LEVEL', '10'))
    DEFAULT_MAX_STOCK_LEVEL = int(os.getenv('DEFAULT_MAX_STOCK_LEVEL', '100'))
    CRITICAL_STOCK_LEVEL = int(os.getenv('CRITICAL_STOCK_LEVEL', '5'))
    MOVEMENT_HISTORY_LIMIT = int(os.getenv('MOVEMENT_HISTORY_LIMIT', '50'))

    # Placeholder warehouse created when none is active
    DEFAULT_WAREHOUSE_NAME = os.getenv('DEFAULT_WAREHOUSE_NAME', 'Main Warehouse')
    DEFAULT_WAREHOUSE_CODE = os.getenv('DEFAULT_WAREHOUSE_CODE', 'MAIN-001')
    DEFAULT_WAREHOUSE_ADDRESS = os.getenv('DEFAULT_WAREHOUSE_ADDRESS', 'Default Address')
    DEFAULT_WAREHOUSE_CITY = os.getenv('DEFAULT_WAREHOUSE_CITY', 'Lagos')
    DEFAULT_WAREHOUSE_STATE = os.getenv('DEFAULT_WAREHOUSE_STATE', 'Lagos')
    DEFAULT_WAREHOUSE_COUNTRY = os.getenv('DEFAULT_WAREHOUSE_COUNTRY', 'Nigeria')
    DEFAULT_WAREHOUSE_CAPACITY = int(os.getenv('DEFAULT_WAREHOUSE_CAPACITY', '10000'))

    # External API
    API_DEFAULT_PAGE_SIZE = int(os.getenv('API_DEFAULT_PAGE_SIZE', '10'))
    API_MAX_PAGE_SIZE = int(os.getenv('API_MAX_PAGE_SIZE', '100'))
    API_DEFAULT_RATE_LIMIT = int(os.getenv('API_DEFAULT_RATE_LIMIT', '1000'))  # requests per hour

    # Redis Cache Configuration
    # Shared cache layer for the external inventory listing
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_INVENTORY_TTL = int(os.getenv('CACHE_INVENTORY_TTL', '30'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'sjf')
