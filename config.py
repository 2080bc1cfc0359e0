import json
import os
from datetime import timedelta
from dotenv import load_dotenv
load_dotenv()


def _bool_env(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'on'}


def _int_env(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def _list_env(key: str, default: list[str]) -> list[str]:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
    except (json.JSONDecodeError, TypeError):
        pass
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'changeme')
    SQLALCHEMY_DATABASE_URI = os.getenv('SQLALCHEMY_DATABASE_URI', 'sqlite:///modular_admin.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = _bool_env('SQLALCHEMY_ECHO', False)

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_FILE = os.getenv('LOG_FILE', os.path.join('logs', 'modular_admin.log'))
    LOG_MAX_BYTES = _int_env('LOG_MAX_BYTES', 10240)
    LOG_BACKUP_COUNT = _int_env('LOG_BACKUP_COUNT', 10)

    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', os.getenv('SECRET_KEY', 'changeme'))
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=_int_env('JWT_ACCESS_TOKEN_EXPIRES', 60))
    JWT_TOKEN_LOCATION = _list_env('JWT_TOKEN_LOCATION', ['headers'])

    MODULES_DIR = os.getenv('MODULES_DIR') or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), 'modular_admin', 'modules')

    SEED_ON_STARTUP = _bool_env('SEED_ON_STARTUP', False)
    DEFAULT_ADMIN_ENABLED = _bool_env('DEFAULT_ADMIN_ENABLED', True)
    DEFAULT_ADMIN_USERNAME = os.getenv('DEFAULT_ADMIN_USERNAME', 'admin')
    DEFAULT_ADMIN_EMAIL = os.getenv('DEFAULT_ADMIN_EMAIL', 'admin@example.com')
    DEFAULT_ADMIN_PASSWORD = os.getenv('DEFAULT_ADMIN_PASSWORD', 'Admin12345!')
    DEFAULT_ADMIN_FULL_NAME = os.getenv('DEFAULT_ADMIN_FULL_NAME', 'System Administrator')
    DEFAULT_ADMIN_RETRY_ATTEMPTS = _int_env('DEFAULT_ADMIN_RETRY_ATTEMPTS', 5)
    DEFAULT_ADMIN_RETRY_DELAY = _int_env('DEFAULT_ADMIN_RETRY_DELAY', 2)
