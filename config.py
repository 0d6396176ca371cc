"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv
from sqlalchemy.pool import StaticPool

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Preferred URL scheme (for url_for with _external=True)
    PREFERRED_URL_SCHEME = os.getenv('PREFERRED_URL_SCHEME', 'http')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'taller')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'taller')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'taller')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,  # Enable connection health checks
        'pool_size': int(os.getenv('DB_POOL_SIZE', '10')),
        'max_overflow': int(os.getenv('DB_MAX_OVERFLOW', '20')),
    }

    # Workshop information (order PDF header, message variables)
    WORKSHOP_NAME = os.getenv('WORKSHOP_NAME', 'Mi Taller')
    WORKSHOP_ADDRESS = os.getenv('WORKSHOP_ADDRESS', '')
    WORKSHOP_PHONE = os.getenv('WORKSHOP_PHONE', '')
    WORKSHOP_EMAIL = os.getenv('WORKSHOP_EMAIL', '')

    # Twilio WhatsApp
    TWILIO_ACCOUNT_SID = os.getenv('TWILIO_ACCOUNT_SID')
    TWILIO_AUTH_TOKEN = os.getenv('TWILIO_AUTH_TOKEN')
    TWILIO_WHATSAPP_NUMBER = os.getenv('TWILIO_WHATSAPP_NUMBER')
    TWILIO_SANDBOX_NUMBER = os.getenv('TWILIO_SANDBOX_NUMBER')
    TWILIO_USE_SANDBOX = os.getenv('TWILIO_USE_SANDBOX', 'false').lower() == 'true'
    TWILIO_DEFAULT_COUNTRY_CODE = os.getenv('TWILIO_DEFAULT_COUNTRY_CODE', '+503')
    TWILIO_TIMEOUT = int(os.getenv('TWILIO_TIMEOUT', '10'))

    # Webhook signature checks. WHATSAPP_WEBHOOK_URL overrides request.url
    # when the app runs behind a proxy that rewrites the public URL.
    WHATSAPP_WEBHOOK_VALIDATE = os.getenv('WHATSAPP_WEBHOOK_VALIDATE', 'true').lower() == 'true'
    WHATSAPP_WEBHOOK_URL = os.getenv('WHATSAPP_WEBHOOK_URL')


class TestConfig(Config):
    """Configuration for the pytest suite (in-memory SQLite)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False

    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'poolclass': StaticPool,
        'connect_args': {'check_same_thread': False},
    }

    WORKSHOP_NAME = 'Taller de Pruebas'

    TWILIO_ACCOUNT_SID = 'ACtest'
    TWILIO_AUTH_TOKEN = 'test-auth-token'
    TWILIO_WHATSAPP_NUMBER = '+14155238886'
    TWILIO_SANDBOX_NUMBER = None
    TWILIO_USE_SANDBOX = False
    TWILIO_DEFAULT_COUNTRY_CODE = '+503'

    WHATSAPP_WEBHOOK_VALIDATE = True
    WHATSAPP_WEBHOOK_URL = None
