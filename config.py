"""Configuration module for the ops console Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _int_env(name, default):
    return int(os.getenv(name, str(default)))


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'opsconsole')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'opsconsole')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'opsconsole')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # QuickBooks Online API
    QUICKBOOKS_SANDBOX = os.getenv('QUICKBOOKS_SANDBOX', 'true').lower() == 'true'
    QUICKBOOKS_API_BASE_URL = os.getenv('QUICKBOOKS_API_BASE_URL') or (
        'https://sandbox-quickbooks.api.intuit.com/v3/company'
        if QUICKBOOKS_SANDBOX
        else 'https://quickbooks.api.intuit.com/v3/company'
    )
    QUICKBOOKS_MINOR_VERSION = os.getenv('QUICKBOOKS_MINOR_VERSION', '70')
    QUICKBOOKS_HTTP_TIMEOUT = _int_env('QUICKBOOKS_HTTP_TIMEOUT', 15)
    QUICKBOOKS_ESTIMATE_PAGE_SIZE = _int_env('QUICKBOOKS_ESTIMATE_PAGE_SIZE', 100)

    # Static credentials (fallback when no connection row is stored)
    QUICKBOOKS_REALM_ID = os.getenv('QUICKBOOKS_REALM_ID', '')
    QUICKBOOKS_ACCESS_TOKEN = os.getenv('QUICKBOOKS_ACCESS_TOKEN', '')

    # OAuth app (only used by the explicit refresh command)
    QUICKBOOKS_CLIENT_ID = os.getenv('QUICKBOOKS_CLIENT_ID', '')
    QUICKBOOKS_CLIENT_SECRET = os.getenv('QUICKBOOKS_CLIENT_SECRET', '')
    QUICKBOOKS_TOKEN_URL = os.getenv(
        'QUICKBOOKS_TOKEN_URL',
        'https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer'
    )
    QUICKBOOKS_TOKEN_EXPIRY_BUFFER_SECONDS = _int_env('QUICKBOOKS_TOKEN_EXPIRY_BUFFER_SECONDS', 300)

    # Quotes
    QUOTE_EXPIRY_ALERT_DAYS = _int_env('QUOTE_EXPIRY_ALERT_DAYS', 7)
    QUOTE_NUMBER_MAX_ATTEMPTS = _int_env('QUOTE_NUMBER_MAX_ATTEMPTS', 5)

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')
