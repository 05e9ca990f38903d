import logging

from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32
WEAK_SECRET_WORDS = ('secret', 'password', 'changeme', 'your-secret', 'jwt-secret')
DEVELOPMENT_KEY_PREFIX = 'django-insecure'


def validate_jwt_secret(secret, debug):
    """Refuse missing or well-known token signing keys outside of debug mode"""
    if debug:
        return
    if not secret:
        raise ImproperlyConfigured('JWT_SECRET is required when DEBUG is off.')
    if secret.startswith(DEVELOPMENT_KEY_PREFIX):
        raise ImproperlyConfigured(
            'JWT_SECRET falls back to the development SECRET_KEY. Set JWT_SECRET to a strong random secret.'
        )
    lowered = secret.lower()
    if any(word in lowered for word in WEAK_SECRET_WORDS):
        raise ImproperlyConfigured('JWT_SECRET contains a weak value. Use a strong random secret.')
    if len(lowered) < MIN_SECRET_LENGTH:
        logger.warning("JWT_SECRET is shorter than %d characters", MIN_SECRET_LENGTH)


class CrmConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'crm'
    verbose_name = 'Owner CRM'

    def ready(self):
        validate_jwt_secret(settings.JWT_SECRET, settings.DEBUG)
