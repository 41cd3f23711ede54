import os

class BaseConfig:
    SECRET_KEY = os.getenv('SECRET_KEY', 'change-me')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///estimator.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Remote render/send functions
    FUNCTIONS_BASE_URL = os.getenv('FUNCTIONS_BASE_URL', 'http://localhost:54321/functions/v1')
    FUNCTIONS_API_KEY = os.getenv('FUNCTIONS_API_KEY', '')
    FUNCTIONS_TIMEOUT = float(os.getenv('FUNCTIONS_TIMEOUT', '15'))
    FUNCTIONS_MAX_RETRIES = int(os.getenv('FUNCTIONS_MAX_RETRIES', '3'))

    # Payment processor callbacks
    PAYMENT_WEBHOOK_SECRET = os.getenv('PAYMENT_WEBHOOK_SECRET', '')
    PAYMENT_WEBHOOK_TOLERANCE = int(os.getenv('PAYMENT_WEBHOOK_TOLERANCE', '300'))

    DEFAULT_DEPOSIT_PERCENT = float(os.getenv('DEFAULT_DEPOSIT_PERCENT', '50'))

class DevConfig(BaseConfig):
    DEBUG = True
    ENV = 'development'

class ProdConfig(BaseConfig):
    DEBUG = False
    ENV = 'production'
