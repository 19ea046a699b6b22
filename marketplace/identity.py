"""
Identity provider client (Clerk-compatible REST API).

Used where a handler needs another user's profile (is the target a
partner?), to provision organizations, and to push organization data
into a user's public metadata.
"""

import logging
from dataclasses import dataclass, field

import requests
from flask import current_app

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    pass


@dataclass
class IdentityUser:
    id: str
    name: str
    email: str
    role: str
    public_metadata: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload):
        metadata = payload.get('public_metadata') or {}
        full_name = ' '.join(
            part for part in (payload.get('first_name'), payload.get('last_name')) if part
        )
        emails = payload.get('email_addresses') or []
        return cls(
            id=payload['id'],
            name=full_name,
            email=emails[0].get('email_address', '') if emails else '',
            role=(metadata.get('role') or '').upper(),
            public_metadata=metadata,
        )


class IdentityClient:
    def __init__(self, base_url, api_key, timeout=5.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        })

    @classmethod
    def from_config(cls, config):
        return cls(
            config['IDENTITY_API_URL'],
            config['IDENTITY_API_KEY'],
            timeout=config['IDENTITY_TIMEOUT'],
        )

    def _request(self, method, path, **kwargs):
        try:
            response = self.session.request(
                method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise IdentityError(f"Identity provider unreachable: {e}") from e
        if response.status_code >= 500:
            logger.warning(f"Identity provider {method} {path} -> {response.status_code}")
        return response

    def get_user(self, user_id):
        """Return the IdentityUser for `user_id`, or None if the provider does not know it."""
        response = self._request('GET', f"/users/{user_id}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise IdentityError(f"GET /users/{user_id} returned {response.status_code}")
        return IdentityUser.from_payload(response.json())

    def update_user_metadata(self, user_id, public_metadata):
        response = self._request(
            'PATCH', f"/users/{user_id}/metadata", json={'public_metadata': public_metadata}
        )
        if response.status_code != 200:
            raise IdentityError(
                f"PATCH /users/{user_id}/metadata returned {response.status_code}"
            )
        return response.json()

    def create_organization(self, name, slug, created_by, public_metadata=None):
        response = self._request('POST', '/organizations', json={
            'name': name,
            'slug': slug,
            'created_by': created_by,
            'public_metadata': public_metadata or {},
        })
        if response.status_code not in (200, 201):
            raise IdentityError(f"POST /organizations returned {response.status_code}")
        return response.json()


def init_identity(app):
    app.extensions['identity'] = IdentityClient.from_config(app.config)


def get_identity():
    return current_app.extensions['identity']
