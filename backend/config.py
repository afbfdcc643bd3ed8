import os


def _flag(name, default='0'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Telegram user id of the person whose location is being guessed
    OPERATOR_TELEGRAM_ID = int(os.environ.get('OPERATOR_TELEGRAM_ID', '0'))
    TELEGRAM_BOT_TOKEN = os.environ.get('TELEGRAM_BOT_TOKEN', '')
    # Production mode refuses the test_login_* socket events; development opts in with PRODUCTION_MODE=0
    PRODUCTION_MODE = _flag('PRODUCTION_MODE', '1')
    # Reject login data older than this many seconds. 0 disables.
    AUTH_MAX_AGE_SEC = int(os.environ.get('AUTH_MAX_AGE_SEC', '0'))
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:8000,http://127.0.0.1:8000',
        ).split(',')
        if o.strip()
    ]
