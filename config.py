"""Configuration and environment loading."""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """App configuration loaded from environment variables."""

    # Flask Configuration
    DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    APP_ENV = os.getenv('APP_ENV', 'development')
    PORT = int(os.getenv('PORT', '8080'))
    JSON_BODY_LIMIT = 10 * 1024 * 1024
    MAX_IMAGE_SIZE = 10 * 1024 * 1024

    # Logging / CORS
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    CORS_ORIGIN = os.getenv('CORS_ORIGIN', '*')

    # Firebase Configuration
    GCP_PROJECT_ID = os.getenv('GCP_PROJECT_ID', 'reading-memory')
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')
    STORAGE_BUCKET = os.getenv('STORAGE_BUCKET', f'{GCP_PROJECT_ID}.appspot.com')
    FUNCTIONS_REGION = os.getenv('FUNCTIONS_REGION', 'asia-northeast1')

    # Google Gemini API Configuration
    GEMINI_API_KEY = os.getenv('GEMINI_API_KEY')
    GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')

    # Book catalogue APIs
    GOOGLE_BOOKS_API_KEY = os.getenv('GOOGLE_BOOKS_API_KEY', '')
    BOOK_API_TIMEOUT = float(os.getenv('BOOK_API_TIMEOUT', '10'))

    @classmethod
    def is_production(cls):
        return cls.APP_ENV == 'production'

    @classmethod
    def validate_config(cls):
        """
        Check the settings the API server cannot start without.

        Raises:
            ValueError: Gemini key missing, debug mode in production, or a
                credentials path that does not exist
        """
        missing = [name for name in ('GEMINI_API_KEY', 'GCP_PROJECT_ID') if not getattr(cls, name)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}. "
                             "Set them in .env or the process environment.")

        if cls.is_production() and cls.DEBUG:
            raise ValueError('FLASK_DEBUG must be off when APP_ENV is production.')

        # Application Default Credentials are used when no key file is given
        if cls.FIREBASE_CREDENTIALS_PATH and not os.path.isfile(cls.FIREBASE_CREDENTIALS_PATH):
            raise ValueError(f'Firebase credentials file not found: {cls.FIREBASE_CREDENTIALS_PATH}')
