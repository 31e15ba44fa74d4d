"""
Authentication classes for the API.

Kept apart from the views so that REST framework can import them while
initialising without pulling in view modules.  Both classes refuse
accounts whose ``status`` is anything other than ``active``, in
addition to Django's own ``is_active`` flag.
"""
from __future__ import annotations

from rest_framework import authentication, exceptions
from rest_framework_simplejwt.authentication import JWTAuthentication as BaseJWTAuthentication


def ensure_active_status(user):
    if getattr(user, 'status', 'active') != 'active':
        raise exceptions.AuthenticationFailed('User account is not active.', code='user_inactive')
    return user


class TokenAuthentication(authentication.TokenAuthentication):
    """Legacy token authentication using the ``Token`` keyword."""

    keyword = 'Token'

    def authenticate_credentials(self, key):
        user, token = super().authenticate_credentials(key)
        return ensure_active_status(user), token


class JWTAuthentication(BaseJWTAuthentication):
    """``Bearer`` JWT authentication issued by the login endpoint."""

    def get_user(self, validated_token):
        return ensure_active_status(super().get_user(validated_token))
