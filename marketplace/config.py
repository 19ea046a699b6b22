import os

from dotenv import load_dotenv

load_dotenv()


def _database_uri():
    url = os.environ.get('DATABASE_URL')
    if url:
        return url

    db_user = os.environ.get('DB_USER', 'marketplace_user')
    db_pass = os.environ.get('DB_PASS', 'password')
    db_host = os.environ.get('DB_HOST', 'marketplace-db')
    db_name = os.environ.get('DB_NAME', 'marketplace_db')
    return f"postgresql://{db_user}:{db_pass}@{db_host}/{db_name}"


class Config:
    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.environ.get('JWT_SECRET', 'dev-secret-change-me')

    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', '')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET', 'whsec_test_secret')

    IDENTITY_API_URL = os.environ.get('IDENTITY_API_URL', 'https://api.clerk.com/v1')
    IDENTITY_API_KEY = os.environ.get('IDENTITY_API_KEY', '')
    IDENTITY_TIMEOUT = float(os.environ.get('IDENTITY_TIMEOUT', '5'))

    APP_BASE_URL = os.environ.get('APP_BASE_URL', 'http://localhost:3000')

    # "3 months" after a rejection before a partner may ask again
    CREDIT_REQUEST_COOLDOWN_DAYS = int(os.environ.get('CREDIT_REQUEST_COOLDOWN_DAYS', '90'))
    DEFAULT_CURRENCY = os.environ.get('DEFAULT_CURRENCY', 'MXN')

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
