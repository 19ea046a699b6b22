import hashlib
import hmac
import json
import time
import unittest
from unittest import mock

from marketplace.extensions import db
from marketplace.models import Organization, ProcessedCheckoutSession, ServiceOrder
from tests.base import TEST_CONFIG, ApiTestCase


def sign(payload, secret=TEST_CONFIG['STRIPE_WEBHOOK_SECRET'], timestamp=None):
    """Stripe-Signature header for `payload`, computed the way Stripe signs webhooks."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode('utf-8')
    signature = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_event(session, event_type='checkout.session.completed'):
    return {
        'id': f"evt_{session.get('id', 'x')}",
        'object': 'event',
        'type': event_type,
        'data': {'object': session},
    }


def plan_session(session_id='cs_plan_1', user_id='user_1', plan='premium', **extra):
    session = {
        'id': session_id,
        'object': 'checkout.session',
        'client_reference_id': user_id,
        'customer_email': f'{user_id}@example.com',
        'customer': 'cus_123',
        'subscription': 'sub_456',
        'payment_status': 'paid',
        'metadata': {'planId': plan, 'planName': plan.title(), 'userId': user_id},
    }
    session.update(extra)
    return session


def service_session(session_id='cs_service_1', user_id='user_1', **metadata):
    meta = {
        'serviceId': 'photography',
        'serviceName': 'Fotografia Profesional',
        'userId': user_id,
        'propertyAddress': 'Av. Reforma 123, CDMX',
        'contactPhone': '+525512345678',
        'preferredDate': '2026-11-02',
        'specialRequests': '',
    }
    meta.update(metadata)
    return {
        'id': session_id,
        'object': 'checkout.session',
        'client_reference_id': user_id,
        'customer_email': f'{user_id}@example.com',
        'amount_total': 250000,
        'currency': 'mxn',
        'payment_intent': 'pi_789',
        'payment_status': 'paid',
        'metadata': meta,
    }


class TestStripeWebhook(ApiTestCase):

    def post_event(self, event, signature=None):
        payload = json.dumps(event)
        headers = {'Content-Type': 'application/json'}
        if signature is not False:
            headers['Stripe-Signature'] = signature or sign(payload)
        return self.client.post('/payments/webhook', data=payload, headers=headers)

    def test_missing_signature(self):
        resp = self.post_event(checkout_event(plan_session()), signature=False)
        err = self.assertError(resp, 400, 'VALIDATION_ERROR')
        self.assertEqual(err['message'], 'No signature provided')

    def test_invalid_signature(self):
        payload = json.dumps(checkout_event(plan_session()))
        resp = self.post_event(checkout_event(plan_session()), signature=sign(payload, secret='whsec_wrong'))
        err = self.assertError(resp, 400, 'VALIDATION_ERROR')
        self.assertEqual(err['message'], 'Invalid signature')
        with self.app.app_context():
            self.assertEqual(Organization.query.count(), 0)

    def test_plan_payment_creates_organization(self):
        resp = self.post_event(checkout_event(plan_session()))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {'received': True, 'outcome': 'organization_created'})

        with self.app.app_context():
            org = Organization.query.filter_by(owner_id='user_1').one()
            self.assertEqual(org.plan, 'premium')
            self.assertEqual(org.name, 'Mi Organización')
            self.assertEqual(org.slug, 'user-user1')
            self.assertEqual(org.credits['properties']['total'], 100)
            self.assertTrue(org.extra_metadata['isPaymentUpgrade'])
            self.assertEqual(org.extra_metadata['stripeCustomerId'], 'cus_123')
            self.assertEqual(org.extra_metadata['stripeSubscriptionId'], 'sub_456')

            marker = db.session.get(ProcessedCheckoutSession, 'cs_plan_1')
            self.assertEqual(marker.kind, 'plan')
            self.assertEqual(marker.reference_id, org.id)

        owner_id, metadata = self.identity.update_user_metadata.call_args[0]
        self.assertEqual(owner_id, 'user_1')
        self.assertEqual(metadata['organizationPlan'], 'premium')
        self.assertEqual(metadata['role'], 'AGENCY')

    def test_second_plan_payment_upgrades_in_place(self):
        self.post_event(checkout_event(plan_session(plan='basic')))
        resp = self.post_event(checkout_event(plan_session(session_id='cs_plan_2', plan='enterprise')))
        self.assertEqual(resp.get_json()['outcome'], 'organization_upgraded')

        with self.app.app_context():
            orgs = Organization.query.filter_by(owner_id='user_1').all()
            self.assertEqual(len(orgs), 1)
            self.assertEqual(orgs[0].plan, 'enterprise')
            self.assertEqual(orgs[0].settings['maxProperties'], -1)

    def test_replayed_event_has_no_side_effects(self):
        event = checkout_event(plan_session())
        self.assertEqual(self.post_event(event).get_json()['outcome'], 'organization_created')
        resp = self.post_event(event)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['outcome'], 'duplicate')
        self.assertEqual(self.identity.update_user_metadata.call_count, 1)

        with self.app.app_context():
            self.assertEqual(Organization.query.count(), 1)

    def test_identity_failure_does_not_fail_webhook(self):
        from marketplace.identity import IdentityError
        self.identity.update_user_metadata.side_effect = IdentityError('down')
        resp = self.post_event(checkout_event(plan_session()))
        self.assertEqual(resp.get_json()['outcome'], 'organization_created')

    def test_service_payment_creates_confirmed_order(self):
        resp = self.post_event(checkout_event(service_session()))
        self.assertEqual(resp.get_json()['outcome'], 'service_order_created')

        with self.app.app_context():
            order = ServiceOrder.query.filter_by(stripe_session_id='cs_service_1').one()
            self.assertEqual(order.status, 'confirmed')
            self.assertEqual(float(order.amount), 2500.0)
            self.assertEqual(order.currency, 'MXN')
            self.assertEqual(order.stripe_payment_intent_id, 'pi_789')
            self.assertEqual(order.user_id, 'user_1')
            self.assertEqual(order.customer_email, 'user_1@example.com')

        resp = self.post_event(checkout_event(service_session()))
        self.assertEqual(resp.get_json()['outcome'], 'duplicate')
        with self.app.app_context():
            self.assertEqual(ServiceOrder.query.count(), 1)

    def create_direct_order(self, session_id, headers=None):
        return self.client.post('/services/create-order', headers=headers or self.user(), json={
            'serviceType': 'photography',
            'serviceName': 'Fotografia Profesional',
            'propertyAddress': 'Av. Reforma 123, CDMX',
            'contactPhone': '+525512345678',
            'amount': 2500,
            'stripeSessionId': session_id,
        })

    def test_payment_confirms_order_created_directly(self):
        order_id = self.assertOk(self.create_direct_order('cs_service_1'), 201)['id']

        resp = self.post_event(checkout_event(service_session()))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['outcome'], 'service_order_confirmed')

        with self.app.app_context():
            order = ServiceOrder.query.one()
            self.assertEqual(order.id, order_id)
            self.assertEqual(order.status, 'confirmed')
            self.assertEqual(order.stripe_payment_intent_id, 'pi_789')
            marker = db.session.get(ProcessedCheckoutSession, 'cs_service_1')
            self.assertEqual(marker.reference_id, order_id)

        self.assertEqual(self.post_event(checkout_event(service_session())).get_json()['outcome'],
                         'duplicate')

    def test_direct_order_after_payment_conflicts(self):
        self.assertEqual(self.post_event(checkout_event(service_session())).get_json()['outcome'],
                         'service_order_created')
        self.assertError(self.create_direct_order('cs_service_1'), 409, 'CONFLICT')
        with self.app.app_context():
            self.assertEqual(ServiceOrder.query.count(), 1)

    def test_payment_for_another_users_order_is_not_applied(self):
        self.assertOk(self.create_direct_order('cs_service_1', headers=self.user('user_2')), 201)
        resp = self.post_event(checkout_event(service_session()))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['outcome'], 'invalid_order')
        with self.app.app_context():
            self.assertEqual(ServiceOrder.query.one().status, 'pending')
            self.assertEqual(ProcessedCheckoutSession.query.count(), 0)

    def test_invalid_service_metadata_is_acknowledged(self):
        resp = self.post_event(checkout_event(service_session(propertyAddress='')))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['outcome'], 'invalid_order')
        with self.app.app_context():
            self.assertEqual(ServiceOrder.query.count(), 0)
            self.assertEqual(ProcessedCheckoutSession.query.count(), 0)

    def test_session_without_user_is_ignored(self):
        resp = self.post_event(checkout_event(plan_session(client_reference_id=None)))
        self.assertEqual(resp.get_json()['outcome'], 'ignored')

    def test_unpaid_session_is_not_fulfilled(self):
        resp = self.post_event(checkout_event(plan_session(payment_status='unpaid')))
        self.assertEqual(resp.get_json()['outcome'], 'unpaid')
        with self.app.app_context():
            self.assertEqual(Organization.query.count(), 0)

    def test_other_events_are_acknowledged(self):
        event = {'id': 'evt_sub', 'type': 'customer.subscription.updated',
                 'data': {'object': {'id': 'sub_456'}}}
        resp = self.post_event(event)
        self.assertEqual(resp.get_json(), {'received': True, 'outcome': 'acknowledged'})


class TestCheckoutCreation(ApiTestCase):

    def setUp(self):
        super().setUp()
        patcher = mock.patch('stripe.checkout.Session.create')
        self.create_session = patcher.start()
        self.addCleanup(patcher.stop)
        self.create_session.return_value = mock.Mock(id='cs_test_1', client_secret='cs_secret_1')

    def test_plan_checkout(self):
        resp = self.client.post('/payments/create-checkout', headers=self.user(), json={
            'planId': 'premium', 'planName': 'Premium', 'price': 1499.5, 'currency': 'MXN',
        })
        data = self.assertOk(resp)
        self.assertEqual(data, {'clientSecret': 'cs_secret_1', 'checkoutId': 'cs_test_1'})

        kwargs = self.create_session.call_args.kwargs
        self.assertEqual(kwargs['mode'], 'subscription')
        self.assertEqual(kwargs['api_key'], 'sk_test_dummy')
        self.assertEqual(kwargs['client_reference_id'], 'user_1')
        self.assertEqual(kwargs['customer_email'], 'user_1@example.com')
        self.assertEqual(kwargs['metadata'], {'planId': 'premium', 'planName': 'Premium', 'userId': 'user_1'})
        price_data = kwargs['line_items'][0]['price_data']
        self.assertEqual(price_data['unit_amount'], 149950)
        self.assertEqual(price_data['currency'], 'mxn')
        self.assertEqual(price_data['recurring'], {'interval': 'month'})
        self.assertTrue(kwargs['return_url'].startswith('http://localhost:3000/upgrade-success'))

    def test_plan_checkout_requires_fields(self):
        resp = self.client.post('/payments/create-checkout', headers=self.user(), json={'planId': 'basic'})
        self.assertError(resp, 400, 'VALIDATION_ERROR')
        self.create_session.assert_not_called()

    def test_service_checkout(self):
        resp = self.client.post('/payments/create-service-checkout', headers=self.user(), json={
            'serviceId': 'legal',
            'serviceName': 'Asesoria Legal',
            'price': 800,
            'propertyAddress': 'Calle 1',
            'contactPhone': '555',
            'preferredDate': '2026-12-01',
        })
        self.assertOk(resp)

        kwargs = self.create_session.call_args.kwargs
        self.assertEqual(kwargs['mode'], 'payment')
        self.assertEqual(kwargs['metadata']['serviceId'], 'legal')
        self.assertEqual(kwargs['metadata']['propertyAddress'], 'Calle 1')
        self.assertEqual(kwargs['metadata']['specialRequests'], '')
        self.assertEqual(kwargs['line_items'][0]['price_data']['unit_amount'], 80000)
        self.assertEqual(kwargs['line_items'][0]['price_data']['currency'], 'mxn')

    def test_checkout_requires_auth(self):
        resp = self.client.post('/payments/create-checkout', json={'planId': 'basic'})
        self.assertError(resp, 401, 'UNAUTHORIZED')

    def test_stripe_failure_is_internal_error(self):
        self.create_session.side_effect = RuntimeError('stripe down')
        resp = self.client.post('/payments/create-checkout', headers=self.user(), json={
            'planId': 'basic', 'planName': 'Basic', 'price': 499,
        })
        err = self.assertError(resp, 500, 'INTERNAL_ERROR')
        self.assertEqual(err['message'], 'Error al crear la sesion de pago')


if __name__ == '__main__':
    unittest.main()
