"""
Per-request caller identity.

The bearer token only proves who the caller is: its subject is the user
id. Role, name and email are read from the identity provider's profile
for that user, once per request, so a role change in the provider takes
effect on the next request without reissuing tokens.
"""

import functools
import logging
from dataclasses import dataclass

from flask import g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from marketplace.errors import ApiError, Forbidden, Unauthorized
from marketplace.identity import IdentityError, get_identity

logger = logging.getLogger(__name__)

ADMIN_ROLES = ('ADMIN', 'SUPERADMIN')
STAFF_ROLES = ('HELPDESK', 'ADMIN', 'SUPERADMIN')


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    role: str
    name: str = ''
    email: str = ''

    def display_name(self, default):
        return self.name or default

    def has_role(self, *roles):
        return self.role in roles


def _resolve(user_id):
    try:
        user = get_identity().get_user(user_id)
    except IdentityError as e:
        logger.error(f"Could not resolve caller {user_id}: {e}")
        raise ApiError('Error al verificar la identidad')
    if user is None:
        raise Unauthorized()
    return AuthContext(
        user_id=user_id,
        role=(user.role or '').upper(),
        name=user.name or '',
        email=user.email or '',
    )


def current_auth():
    if 'auth' not in g:
        try:
            verify_jwt_in_request()
        except (JWTExtendedException, PyJWTError):
            raise Unauthorized()

        user_id = get_jwt_identity()
        if not user_id:
            raise Unauthorized()
        g.auth = _resolve(user_id)
    return g.auth


def role_required(*roles, message='No tienes permisos para acceder a esta informacion'):
    """Reject the request unless the caller holds one of `roles` (any role if none given)."""
    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            auth = current_auth()
            if roles and not auth.has_role(*roles):
                raise Forbidden(message)
            return view(*args, **kwargs)
        return wrapper
    return decorator
