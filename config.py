import os

from dotenv import load_dotenv

# Config reads the environment at import time, so .env must be loaded first
load_dotenv()

MATCHING_ENV_VARS = {
    "blood_type_compatibility": "MATCHING_BLOOD_TYPE_COMPATIBILITY",
    "age_range": "MATCHING_AGE_RANGE",
    "urgency_weight": "MATCHING_URGENCY_WEIGHT",
    "time_weight": "MATCHING_TIME_WEIGHT",
}


def matching_defaults():
    """Matching configuration overrides set in the environment"""
    values = {field: os.getenv(name) for field, name in MATCHING_ENV_VARS.items()}
    return {field: value for field, value in values.items() if value}


class Config:
    """Flask configuration"""

    # Use SESSION_SECRET from environment or generate a random one
    SECRET_KEY = os.getenv('SESSION_SECRET', os.urandom(24))

    # Flask settings
    DEBUG = os.getenv('FLASK_ENV', 'development') == 'development'
    TESTING = False

    # CORS settings
    CORS_HEADERS = 'Content-Type'

    # DynamoDB
    AWS_REGION = os.getenv('AWS_REGION', 'us-east-1')
    DYNAMODB_ENDPOINT_URL = os.getenv('DYNAMODB_ENDPOINT_URL', '')
    DONORS_TABLE = os.getenv('DONORS_TABLE', 'donors')
    REQUESTS_TABLE = os.getenv('REQUESTS_TABLE', 'requests')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.getenv('LOG_FORMAT', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # Environment overrides for the default matching rules
    MATCHING_DEFAULTS = matching_defaults()
