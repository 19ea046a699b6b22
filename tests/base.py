import unittest
from unittest import mock

from flask_jwt_extended import create_access_token

from marketplace.app import create_app
from marketplace.extensions import db
from marketplace.identity import IdentityUser

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
    'STRIPE_SECRET_KEY': 'sk_test_dummy',
    'STRIPE_WEBHOOK_SECRET': 'whsec_test_secret',
    'IDENTITY_API_KEY': 'sk_identity_dummy',
    'APP_BASE_URL': 'http://localhost:3000',
    'LOG_LEVEL': 'WARNING',
}


class ApiTestCase(unittest.TestCase):
    """
    App on in-memory SQLite with a fresh schema per test and a mocked
    identity provider. `self.directory` holds the provider's users: the
    mock's get_user answers from it, so registering a user is what gives
    a token its role. No app context stays pushed between requests, so
    every request resolves its caller from scratch; wrap direct database
    checks in `with self.app.app_context():`.
    """

    def setUp(self):
        self.app = create_app(TEST_CONFIG)
        self.client = self.app.test_client()
        self.directory = {}
        self.identity = mock.MagicMock()
        self.identity.get_user.side_effect = self.directory.get
        self.app.extensions['identity'] = self.identity

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()

    def register(self, user_id, role, name='', email=''):
        self.directory[user_id] = IdentityUser(id=user_id, name=name, email=email, role=role)
        return self.directory[user_id]

    def token_for(self, user_id):
        with self.app.app_context():
            token = create_access_token(identity=user_id)
        return {'Authorization': f'Bearer {token}'}

    def headers(self, user_id, role, name='', email=''):
        self.register(user_id, role, name, email)
        return self.token_for(user_id)

    def partner(self, user_id='partner_1', name='Paula Partner'):
        return self.headers(user_id, 'PARTNER', name, f'{user_id}@example.com')

    def admin(self, user_id='admin_1', name='Ana Admin'):
        return self.headers(user_id, 'ADMIN', name, f'{user_id}@example.com')

    def superadmin(self, user_id='super_1', name='Sergio Super'):
        return self.headers(user_id, 'SUPERADMIN', name, f'{user_id}@example.com')

    def helpdesk(self, user_id='help_1', name='Hector Helpdesk'):
        return self.headers(user_id, 'HELPDESK', name, f'{user_id}@example.com')

    def user(self, user_id='user_1', name='Ursula User'):
        return self.headers(user_id, 'USER', name, f'{user_id}@example.com')

    def assertError(self, resp, status, code):
        self.assertEqual(resp.status_code, status, resp.get_json())
        body = resp.get_json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error']['code'], code)
        return body['error']

    def assertOk(self, resp, status=200):
        self.assertEqual(resp.status_code, status, resp.get_json())
        body = resp.get_json()
        self.assertTrue(body['success'])
        return body['data']
