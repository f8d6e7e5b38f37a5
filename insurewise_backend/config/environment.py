"""
Environment Configuration for InsureWise Backend

This module provides centralized access to environment variables for:
- MongoDB and JWT configuration
- Paystack API configuration
- Rate limiting, CORS and wallet defaults
"""

import os
import re
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

APP_ENV = os.environ.get('APP_ENV', 'development')

# API
API_PREFIX = os.environ.get('API_PREFIX', '/api')
API_VERSION = os.environ.get('API_VERSION', 'v1')
PORT = int(os.environ.get('PORT', '5000'))

# MongoDB
MONGO_URI = os.environ.get('MONGO_URI', 'mongodb://localhost:27017/insurewise')

# JWT
JWT_SECRET = os.environ.get('JWT_SECRET', 'insurewise-jwt-secret-change-me')
JWT_REFRESH_SECRET = os.environ.get('JWT_REFRESH_SECRET', 'insurewise-refresh-secret-change-me')
JWT_EXPIRES_IN = os.environ.get('JWT_EXPIRES_IN', '7d')
JWT_REFRESH_EXPIRES_IN = os.environ.get('JWT_REFRESH_EXPIRES_IN', '30d')

# Rate limiting (global, per IP)
RATE_LIMIT_WINDOW_MS = int(os.environ.get('RATE_LIMIT_WINDOW_MS', '900000'))
RATE_LIMIT_MAX_REQUESTS = int(os.environ.get('RATE_LIMIT_MAX_REQUESTS', '100'))

# CORS
CORS_ORIGIN = os.environ.get('CORS_ORIGIN', '*')

# Paystack API Configuration
PAYSTACK_SECRET_KEY = os.environ.get('PAYSTACK_SECRET_KEY', '')
PAYSTACK_PUBLIC_KEY = os.environ.get('PAYSTACK_PUBLIC_KEY', '')
PAYSTACK_BASE_URL = os.environ.get('PAYSTACK_BASE_URL', 'https://api.paystack.co')
# Without a secret key there is nothing to call, so checkout links are mocked
PAYSTACK_MOCK = os.environ.get('PAYSTACK_MOCK', 'true' if not PAYSTACK_SECRET_KEY else 'false').lower() == 'true'
PAYSTACK_TIMEOUT_SECONDS = int(os.environ.get('PAYSTACK_TIMEOUT_SECONDS', '30'))

# Wallet and savings
DEFAULT_WALLET_BALANCE = float(os.environ.get('DEFAULT_WALLET_BALANCE', '0'))
CASHBACK_3_MONTHS_PERCENTAGE = float(os.environ.get('CASHBACK_3_MONTHS_PERCENTAGE', '2'))
CASHBACK_6_MONTHS_PERCENTAGE = float(os.environ.get('CASHBACK_6_MONTHS_PERCENTAGE', '5'))

# Claims
CLAIM_ANALYSIS_DELAY_SECONDS = float(os.environ.get('CLAIM_ANALYSIS_DELAY_SECONDS', '2'))

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_DIR = os.environ.get('LOG_DIR', 'logs')

# Optional bootstrap admin
ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL', '')
ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', '')


_DURATION_UNITS = {
    's': 'seconds',
    'm': 'minutes',
    'h': 'hours',
    'd': 'days',
    'w': 'weeks',
}


def parse_duration(value):
    """
    Parse an expiry string such as '7d', '12h' or '3600' into a timedelta.
    Bare numbers are seconds.
    """
    if isinstance(value, timedelta):
        return value

    match = re.fullmatch(r'\s*(\d+)\s*([smhdw]?)\s*', str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")

    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS.get(unit or 's'): int(amount)})


def get_default_config():
    """Flask config mapping built from the environment."""
    return {
        'APP_ENV': APP_ENV,
        'TESTING': APP_ENV == 'testing',
        'API_PREFIX': API_PREFIX,
        'API_VERSION': API_VERSION,
        'MONGO_URI': MONGO_URI,
        'JWT_SECRET': JWT_SECRET,
        'JWT_REFRESH_SECRET': JWT_REFRESH_SECRET,
        'JWT_EXPIRATION_DELTA': parse_duration(JWT_EXPIRES_IN),
        'JWT_REFRESH_EXPIRATION_DELTA': parse_duration(JWT_REFRESH_EXPIRES_IN),
        'RATE_LIMIT_WINDOW_MS': RATE_LIMIT_WINDOW_MS,
        'RATE_LIMIT_MAX_REQUESTS': RATE_LIMIT_MAX_REQUESTS,
        'RATELIMIT_ENABLED': True,
        'CORS_ORIGIN': CORS_ORIGIN,
        'PAYSTACK_SECRET_KEY': PAYSTACK_SECRET_KEY,
        'PAYSTACK_PUBLIC_KEY': PAYSTACK_PUBLIC_KEY,
        'PAYSTACK_BASE_URL': PAYSTACK_BASE_URL,
        'PAYSTACK_MOCK': PAYSTACK_MOCK,
        'PAYSTACK_TIMEOUT_SECONDS': PAYSTACK_TIMEOUT_SECONDS,
        'DEFAULT_WALLET_BALANCE': DEFAULT_WALLET_BALANCE,
        'CASHBACK_3_MONTHS_PERCENTAGE': CASHBACK_3_MONTHS_PERCENTAGE,
        'CASHBACK_6_MONTHS_PERCENTAGE': CASHBACK_6_MONTHS_PERCENTAGE,
        'CLAIM_ANALYSIS_DELAY_SECONDS': CLAIM_ANALYSIS_DELAY_SECONDS,
        'CLAIM_ANALYSIS_SYNC': False,
        'LOG_LEVEL': LOG_LEVEL,
        'LOG_DIR': LOG_DIR,
        'ADMIN_EMAIL': ADMIN_EMAIL,
        'ADMIN_PASSWORD': ADMIN_PASSWORD,
    }
