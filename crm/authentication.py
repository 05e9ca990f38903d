"""
Bearer token authentication for owners and admins.

Tokens are HS256 JWTs carrying the account id (``sub``), ``email``, ``role``
and a unique ``jti``. Logging out revokes a token by parking its ``jti`` in the
shared cache until the token would have expired anyway.
"""

import uuid
from datetime import timedelta

import jwt
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone
from drf_spectacular.extensions import OpenApiAuthenticationExtension
from rest_framework import authentication, exceptions

from .models import Admin, StationOwner

REVOKED_KEY = 'revoked-token:{jti}'

ROLE_OWNER = 'owner'
ADMIN_ROLES = (Admin.ROLE_ADMIN, Admin.ROLE_SUPERADMIN)


def issue_token(account) -> str:
    now = timezone.now()
    payload = {
        'sub': str(account.pk),
        'email': account.email,
        'role': account.role,
        'jti': uuid.uuid4().hex,
        'iat': now,
        'exp': now + timedelta(days=settings.JWT_EXPIRY_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        options={'require': ['sub', 'role', 'jti', 'exp']},
    )


def revoke_token(payload: dict) -> None:
    remaining = int(payload['exp'] - timezone.now().timestamp())
    cache.set(REVOKED_KEY.format(jti=payload['jti']), True, timeout=max(1, remaining))


def is_revoked(payload: dict) -> bool:
    return cache.get(REVOKED_KEY.format(jti=payload['jti'])) is not None


def extract_token(request):
    """Accept both "Bearer <token>" and a bare token in the Authorization header"""
    header = authentication.get_authorization_header(request).decode('latin-1').strip()
    if not header:
        return None
    parts = header.split()
    if parts[0].lower() == 'bearer':
        return parts[1] if len(parts) == 2 else None
    return header if len(parts) == 1 else None


class BearerTokenAuthentication(authentication.BaseAuthentication):
    """Resolves the token to a StationOwner or Admin; request.auth holds the claims"""

    keyword = 'Bearer'

    def authenticate(self, request):
        token = extract_token(request)
        if token is None:
            return None

        try:
            payload = decode_token(token)
        except jwt.ExpiredSignatureError:
            raise exceptions.AuthenticationFailed('Token has expired')
        except jwt.InvalidTokenError:
            raise exceptions.AuthenticationFailed('Invalid or expired token')

        if is_revoked(payload):
            raise exceptions.AuthenticationFailed('Token has been revoked')

        role = payload['role']
        if role == ROLE_OWNER:
            account = StationOwner.objects.filter(pk=payload['sub']).first()
        elif role in ADMIN_ROLES:
            account = Admin.objects.filter(pk=payload['sub']).first()
        else:
            raise exceptions.AuthenticationFailed('Invalid token role')

        if account is None:
            raise exceptions.AuthenticationFailed('Account no longer exists')

        return account, payload

    def authenticate_header(self, request):
        return self.keyword


class BearerTokenScheme(OpenApiAuthenticationExtension):
    target_class = 'crm.authentication.BearerTokenAuthentication'
    name = 'bearerAuth'

    def get_security_definition(self, auto_schema):
        return {'type': 'http', 'scheme': 'bearer', 'bearerFormat': 'JWT'}
