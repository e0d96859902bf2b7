"""
Application configuration

Values come from environment variables; a local .env file is loaded first
when present.
"""
import os
import secrets
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _database_url():
    url = os.environ.get('DATABASE_URL', 'sqlite:///servicehub.db')
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql+psycopg2://', 1)
    elif url.startswith('postgresql://'):
        url = url.replace('postgresql://', 'postgresql+psycopg2://', 1)
    return url


def _secret_key():
    key = os.environ.get('SESSION_SECRET') or os.environ.get('SECRET_KEY')
    if not key:
        # Development only; tokens become invalid on every restart
        key = secrets.token_hex(32)
        print("⚠️  WARNING: Using auto-generated SECRET_KEY. Set SESSION_SECRET or SECRET_KEY environment variable in production!")
    return key


class Config:
    """Default configuration read from the environment"""
    SECRET_KEY = _secret_key()
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET = os.environ.get('JWT_SECRET') or SECRET_KEY
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRY = timedelta(hours=int(os.environ.get('JWT_EXPIRY_HOURS', 24)))

    ALLOWED_ORIGINS = os.environ.get('ALLOWED_ORIGINS', '*').split(',')
    # Number of reverse proxies in front of the app whose X-Forwarded-For is trusted
    PROXY_FIX_X_FOR = int(os.environ.get('PROXY_FIX_X_FOR', 0))

    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(BASE_DIR, 'uploads'))
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10MB

    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')
    PLATFORM_FEE_PERCENT = float(os.environ.get('PLATFORM_FEE_PERCENT', 0.10))
    DEFAULT_CURRENCY = os.environ.get('DEFAULT_CURRENCY', 'MYR')

    S3_BUCKET = os.environ.get('S3_BUCKET')
    AWS_REGION = os.environ.get('AWS_REGION', 'ap-southeast-1')
    PRESIGNED_URL_EXPIRY = int(os.environ.get('PRESIGNED_URL_EXPIRY', 3600))

    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY')
    SENDGRID_FROM_EMAIL = os.environ.get('SENDGRID_FROM_EMAIL')
    SENDGRID_FROM_NAME = os.environ.get('SENDGRID_FROM_NAME', 'ServiceHub')
    APP_URL = os.environ.get('APP_URL', 'http://localhost:3000')

    AUDIT_WEBHOOK_URL = os.environ.get('AUDIT_WEBHOOK_URL')
    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(BASE_DIR, 'logs'))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Login brute-force protection
    LOGIN_MAX_ATTEMPTS = 5
    LOGIN_WINDOW_MINUTES = 15
    LOGIN_LOCKOUT_MINUTES = 30


class TestingConfig(Config):
    """In-memory database, external services switched off"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET = 'test-secret'
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = None
    S3_BUCKET = None
    SENDGRID_API_KEY = None
    SENDGRID_FROM_EMAIL = None
    AUDIT_WEBHOOK_URL = None
    LOGIN_MAX_ATTEMPTS = 1000
