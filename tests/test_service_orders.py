import unittest
from datetime import datetime, timezone
from unittest import mock

from marketplace.errors import Conflict, ValidationError
from marketplace.extensions import db
from marketplace.models import ServiceOrder
from marketplace.models.service_order import validate_order_fields
from tests.base import ApiTestCase

ORDER = {
    'serviceType': 'photography',
    'serviceName': 'Fotografia Profesional',
    'serviceDescription': 'Sesion de 30 fotos',
    'propertyAddress': 'Av. Reforma 123, CDMX',
    'contactPhone': '+525512345678',
    'preferredDate': '2026-11-02',
    'amount': 2500,
}


class TestOrderModel(unittest.TestCase):
    """Transition rules on an unsaved order; no database needed."""

    def order(self, status='pending'):
        fields = validate_order_fields({
            'user_id': 'user_1',
            'service_type': 'legal',
            'service_name': 'Asesoria Legal',
            'property_address': 'Calle 1',
            'contact_phone': '555',
            'amount': 100,
            'currency': 'mxn',
        })
        return ServiceOrder.build(fields, status=status, now=1000)

    def test_validator(self):
        with self.assertRaises(ValidationError):
            validate_order_fields({'user_id': 'u', 'service_type': 'legal', 'service_name': 'x',
                                   'property_address': 'a', 'contact_phone': '1', 'amount': 0})
        with self.assertRaises(ValidationError) as ctx:
            validate_order_fields({'user_id': 'u', 'service_type': 'legal', 'service_name': 'x',
                                   'contact_phone': '1', 'amount': 10})
        self.assertIn('propertyAddress', ctx.exception.message)
        with self.assertRaises(ValidationError) as ctx:
            validate_order_fields({'user_id': 'u', 'service_type': 'drone', 'service_name': 'x',
                                   'property_address': 'a', 'contact_phone': '1', 'amount': 10})
        self.assertEqual(ctx.exception.message, 'Tipo de servicio invalido')
        for amount in (float('nan'), float('inf'), 'NaN'):
            with self.assertRaises(ValidationError):
                validate_order_fields({'user_id': 'u', 'service_type': 'legal', 'service_name': 'x',
                                       'property_address': 'a', 'contact_phone': '1', 'amount': amount})

    def test_build_only_pending_or_confirmed(self):
        self.assertEqual(self.order('confirmed').status, 'confirmed')
        with self.assertRaises(ValidationError):
            self.order('completed')

    def test_full_lifecycle(self):
        order = self.order()
        self.assertEqual(order.currency, 'MXN')
        order.apply('confirm', now=2000)
        order.apply('start_progress', now=3000)
        order.apply('complete', deliverables=['fotos.zip'], now=4000)
        self.assertEqual(order.status, 'completed')
        self.assertEqual(order.actual_delivery, 4000)
        self.assertEqual(order.updated_at, 4000)
        self.assertEqual(order.deliverables, ['fotos.zip'])

    def test_steps_cannot_be_skipped(self):
        order = self.order()
        with self.assertRaises(Conflict):
            order.apply('complete')
        with self.assertRaises(Conflict):
            order.apply('start_progress')
        self.assertEqual(order.status, 'pending')

    def test_cancel_from_each_active_state(self):
        for events in ([], ['confirm'], ['confirm', 'start_progress']):
            order = self.order()
            for event in events:
                order.apply(event)
            order.apply('cancel')
            self.assertEqual(order.status, 'cancelled')

    def test_terminal_states_are_final(self):
        order = self.order()
        order.apply('cancel')
        for event in ('confirm', 'start_progress', 'complete', 'cancel'):
            with self.assertRaises(Conflict):
                order.apply(event)
        with self.assertRaises(Conflict):
            order.apply('assign', assigned_to='staff_1')
        order.apply('add_note', note='Cliente cancelo por telefono')
        self.assertEqual(order.notes, ['Cliente cancelo por telefono'])

    def test_assign(self):
        order = self.order('confirmed')
        order.apply('assign', assigned_to=' fotografo_7 ', estimated_delivery='2026-11-10')
        self.assertEqual(order.assigned_to, 'fotografo_7')
        self.assertEqual(order.estimated_delivery, '2026-11-10')
        with self.assertRaises(ValidationError):
            order.apply('assign', assigned_to='')

    def test_unknown_event(self):
        with self.assertRaises(ValidationError):
            self.order().apply('archive')


class TestServiceOrderApi(ApiTestCase):

    def create(self, headers=None, **overrides):
        body = dict(ORDER)
        body.update(overrides)
        return self.client.post('/services/create-order', json=body, headers=headers or self.user())

    def transition(self, order_id, event, headers=None, **extra):
        body = {'event': event}
        body.update(extra)
        return self.client.patch(f'/services/orders/{order_id}/status', json=body,
                                 headers=headers or self.helpdesk())

    def test_create_order(self):
        data = self.assertOk(self.create(), 201)
        self.assertEqual(data['status'], 'pending')
        self.assertEqual(data['userId'], 'user_1')
        self.assertEqual(data['currency'], 'MXN')
        self.assertEqual(data['amount'], 2500.0)
        self.assertEqual(data['deliverables'], [])
        self.assertEqual(data['customerEmail'], 'user_1@example.com')

    def test_create_order_validation(self):
        err = self.assertError(self.create(amount=0), 400, 'VALIDATION_ERROR')
        self.assertEqual(err['message'], 'El monto debe ser mayor a 0')
        self.assertError(self.create(propertyAddress=''), 400, 'VALIDATION_ERROR')
        self.assertError(self.create(serviceType='drone'), 400, 'VALIDATION_ERROR')
        self.assertError(self.client.post('/services/create-order', json=ORDER), 401, 'UNAUTHORIZED')

    def test_non_finite_amount_rejected(self):
        for amount in ('NaN', 'nan', 'Infinity', '-Infinity', '1e400'):
            err = self.assertError(self.create(amount=amount), 400, 'VALIDATION_ERROR')
            self.assertEqual(err['message'], 'El monto debe ser mayor a 0')
        with self.app.app_context():
            self.assertEqual(ServiceOrder.query.count(), 0)

    def test_session_id_used_once(self):
        data = self.assertOk(self.create(stripeSessionId='cs_direct_1'), 201)
        self.assertEqual(data['stripeSessionId'], 'cs_direct_1')

        err = self.assertError(self.create(stripeSessionId='cs_direct_1'), 409, 'CONFLICT')
        self.assertEqual(err['message'], 'Ya existe una orden para esta sesion de pago')
        self.assertOk(self.create(stripeSessionId='cs_direct_2'), 201)
        self.assertOk(self.create(), 201)
        self.assertOk(self.create(), 201)

    def test_lifecycle_over_http(self):
        order_id = self.assertOk(self.create(), 201)['id']
        self.assertOk(self.transition(order_id, 'confirm'))
        self.assertOk(self.transition(order_id, 'assign', assignedTo='fotografo_7',
                                      estimatedDelivery='2026-11-10'))
        self.assertOk(self.transition(order_id, 'start_progress'))
        self.assertOk(self.transition(order_id, 'add_note', note='Sesion realizada'))
        data = self.assertOk(self.transition(order_id, 'complete', deliverables=['a.jpg', 'b.jpg']))

        self.assertEqual(data['status'], 'completed')
        self.assertEqual(data['deliverables'], ['a.jpg', 'b.jpg'])
        self.assertEqual(data['notes'], ['Sesion realizada'])
        self.assertEqual(data['assignedTo'], 'fotografo_7')
        self.assertIsNotNone(data['actualDelivery'])

        with self.app.app_context():
            order = db.session.get(ServiceOrder, order_id)
            self.assertEqual(order.deliverables, ['a.jpg', 'b.jpg'])

    def test_complete_after_cancel_conflicts(self):
        order_id = self.assertOk(self.create(), 201)['id']
        self.assertOk(self.transition(order_id, 'cancel'))
        self.assertError(self.transition(order_id, 'complete'), 409, 'CONFLICT')
        self.assertError(self.transition(order_id, 'confirm'), 409, 'CONFLICT')

    def test_transition_errors(self):
        self.assertError(self.transition('missing', 'confirm'), 404, 'NOT_FOUND')
        order_id = self.assertOk(self.create(), 201)['id']
        self.assertError(self.transition(order_id, 'confirm', headers=self.user()), 403, 'FORBIDDEN')
        self.assertError(self.transition(order_id, 'teleport'), 400, 'VALIDATION_ERROR')
        self.assertError(self.transition(order_id, 'complete', deliverables='x'), 400, 'VALIDATION_ERROR')

    def test_get_order_owner_or_staff(self):
        order_id = self.assertOk(self.create(), 201)['id']
        self.assertOk(self.client.get(f'/services/orders/{order_id}', headers=self.user()))
        self.assertOk(self.client.get(f'/services/orders/{order_id}', headers=self.admin()))
        self.assertError(self.client.get(f'/services/orders/{order_id}', headers=self.user('user_2')),
                         403, 'FORBIDDEN')
        self.assertError(self.client.get('/services/orders/nope', headers=self.user()), 404, 'NOT_FOUND')

    def test_list_orders_with_pagination(self):
        ids = [self.assertOk(self.create(serviceName=f'Servicio {i}'), 201)['id'] for i in range(3)]
        self.assertOk(self.create(headers=self.user('user_2')), 201)
        self.assertOk(self.transition(ids[0], 'confirm'))

        data = self.assertOk(self.client.get('/services/orders?limit=2', headers=self.user()))
        self.assertEqual(len(data['data']), 2)
        self.assertEqual(data['pagination'], {'total': 3, 'limit': 2, 'offset': 0, 'hasMore': True})

        data = self.assertOk(self.client.get('/services/orders?limit=2&offset=2', headers=self.user()))
        self.assertEqual(len(data['data']), 1)
        self.assertFalse(data['pagination']['hasMore'])

        data = self.assertOk(self.client.get('/services/orders?status=confirmed', headers=self.user()))
        self.assertEqual([o['id'] for o in data['data']], [ids[0]])

        self.assertError(self.client.get('/services/orders?limit=abc', headers=self.user()),
                         400, 'VALIDATION_ERROR')

    def test_stats(self):
        a = self.assertOk(self.create(amount=1000), 201)['id']
        b = self.assertOk(self.create(amount=2000), 201)['id']
        c = self.assertOk(self.create(amount=4000), 201)['id']
        self.assertOk(self.create(amount=8000), 201)
        for event in ('confirm', 'start_progress', 'complete'):
            self.assertOk(self.transition(a, event))
        self.assertOk(self.transition(b, 'confirm'))
        self.assertOk(self.transition(c, 'cancel'))

        data = self.assertOk(self.client.get('/services/stats', headers=self.user()))
        self.assertEqual(data['activeServices'], 1)
        self.assertEqual(data['completedServices'], 1)
        self.assertEqual(data['totalInvestment'], 11000.0)
        self.assertEqual(data['thisMonthServices'], 4)

    def test_stats_month_window(self):
        self.assertOk(self.create(), 201)
        next_month = datetime.now(timezone.utc).replace(day=28)
        later = int(next_month.timestamp() * 1000) + 10 * 86400000
        with mock.patch('marketplace.services.service_order_service.now_ms', return_value=later):
            data = self.assertOk(self.client.get('/services/stats', headers=self.user()))
        self.assertEqual(data['thisMonthServices'], 0)
        self.assertEqual(data['totalInvestment'], 2500.0)


if __name__ == '__main__':
    unittest.main()
