"""
ServiceOrder Model
Status: pending | confirmed | in_progress | completed | cancelled

pending -> confirmed -> in_progress -> completed, and cancelled from any
non-terminal state. Nothing moves an order back to an earlier state.
"""

import enum
import math
import uuid

from sqlalchemy.ext.mutable import MutableList

from marketplace.errors import Conflict, ValidationError
from marketplace.extensions import JSONType, db, now_ms


class ServiceType(str, enum.Enum):
    PHOTOGRAPHY = 'photography'
    LEGAL = 'legal'
    VIRTUAL_TOUR = 'virtual-tour'
    HOME_STAGING = 'home-staging'
    MARKET_ANALYSIS = 'market-analysis'
    DOCUMENTATION = 'documentation'


ORDER_STATUSES = ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled')
ACTIVE_STATUSES = ('pending', 'confirmed', 'in_progress')
TERMINAL_STATUSES = ('completed', 'cancelled')

# event -> (allowed source states, target state)
TRANSITIONS = {
    'confirm': ({'pending'}, 'confirmed'),
    'start_progress': ({'confirmed'}, 'in_progress'),
    'complete': ({'in_progress'}, 'completed'),
    'cancel': (set(ACTIVE_STATUSES), 'cancelled'),
}
EVENTS = tuple(TRANSITIONS) + ('assign', 'add_note')


def _text(value):
    return value.strip() if isinstance(value, str) else ''


def validate_order_fields(data):
    """
    Shared by direct creation and webhook confirmation.
    Returns the cleaned fields or raises ValidationError.
    """
    user_id = _text(data.get('user_id'))
    service_name = _text(data.get('service_name'))
    property_address = _text(data.get('property_address'))
    contact_phone = _text(data.get('contact_phone'))

    missing = [
        name for name, value in (
            ('userId', user_id),
            ('serviceType', data.get('service_type')),
            ('serviceName', service_name),
            ('propertyAddress', property_address),
            ('contactPhone', contact_phone),
        ) if not value
    ]
    if missing:
        raise ValidationError(f"Campos requeridos faltantes: {', '.join(missing)}")

    try:
        service_type = ServiceType(data['service_type'])
    except ValueError:
        raise ValidationError('Tipo de servicio invalido')

    amount = data.get('amount')
    if isinstance(amount, bool) or not isinstance(amount, (int, float, str)):
        raise ValidationError('El monto debe ser mayor a 0')
    try:
        amount = float(amount)
    except (ValueError, OverflowError):
        raise ValidationError('El monto debe ser mayor a 0')
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError('El monto debe ser mayor a 0')

    return {
        'user_id': user_id,
        'service_type': service_type.value,
        'service_name': service_name,
        'service_description': _text(data.get('service_description')),
        'property_address': property_address,
        'contact_phone': contact_phone,
        'preferred_date': _text(data.get('preferred_date')),
        'special_requests': _text(data.get('special_requests')),
        'amount': amount,
        'currency': _text(data.get('currency')).upper() or None,
        'customer_email': _text(data.get('customer_email')) or None,
        'stripe_payment_intent_id': data.get('stripe_payment_intent_id') or None,
        'stripe_session_id': data.get('stripe_session_id') or None,
    }


class ServiceOrder(db.Model):
    __tablename__ = 'service_orders'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(64), nullable=False, index=True)
    service_type = db.Column(db.String(32), nullable=False, index=True)
    service_name = db.Column(db.String(255), nullable=False)
    service_description = db.Column(db.Text, nullable=False, default='')
    property_address = db.Column(db.Text, nullable=False)
    contact_phone = db.Column(db.String(32), nullable=False)
    preferred_date = db.Column(db.String(64), nullable=False, default='')
    special_requests = db.Column(db.Text, nullable=False, default='')
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default='MXN')
    status = db.Column(
        db.Enum(*ORDER_STATUSES, name='service_order_status'),
        nullable=False,
        default='pending',
        index=True,
    )
    stripe_payment_intent_id = db.Column(db.String(255), index=True)
    stripe_session_id = db.Column(db.String(255), unique=True)
    customer_email = db.Column(db.String(255))
    estimated_delivery = db.Column(db.String(64))
    actual_delivery = db.Column(db.BigInteger)
    assigned_to = db.Column(db.String(255))
    deliverables = db.Column(MutableList.as_mutable(JSONType), nullable=False, default=list)
    notes = db.Column(MutableList.as_mutable(JSONType), nullable=False, default=list)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms, index=True)
    updated_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    @classmethod
    def build(cls, fields, status='pending', now=None):
        if status not in ('pending', 'confirmed'):
            raise ValidationError("El estado inicial debe ser 'pending' o 'confirmed'")
        now = now or now_ms()
        fields = {key: value for key, value in fields.items()
                  if not (key == 'currency' and not value)}
        return cls(
            id=str(uuid.uuid4()),
            status=status,
            deliverables=[],
            notes=[],
            created_at=now,
            updated_at=now,
            **fields,
        )

    def is_active(self):
        return self.status in ACTIVE_STATUSES

    def apply(self, event, deliverables=None, note=None, assigned_to=None,
              estimated_delivery=None, now=None):
        """Apply one lifecycle event in place; illegal source states raise Conflict."""
        now = now or now_ms()

        if event in TRANSITIONS:
            sources, target = TRANSITIONS[event]
            if self.status not in sources:
                raise Conflict(
                    f"No se puede aplicar '{event}' a una orden en estado '{self.status}'"
                )
            self.status = target
            if event == 'complete':
                self.actual_delivery = now
                self.deliverables.extend(deliverables or [])
        elif event == 'assign':
            if self.status in TERMINAL_STATUSES:
                raise Conflict(f"No se puede asignar una orden en estado '{self.status}'")
            if not _text(assigned_to):
                raise ValidationError('El responsable es requerido')
            self.assigned_to = assigned_to.strip()
            if estimated_delivery:
                self.estimated_delivery = estimated_delivery
        elif event == 'add_note':
            if not _text(note):
                raise ValidationError('La nota es requerida')
            self.notes.append(note.strip())
        else:
            raise ValidationError('Evento invalido')

        self.updated_at = now
        return self

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'serviceType': self.service_type,
            'serviceName': self.service_name,
            'serviceDescription': self.service_description,
            'propertyAddress': self.property_address,
            'contactPhone': self.contact_phone,
            'preferredDate': self.preferred_date,
            'specialRequests': self.special_requests,
            'amount': float(self.amount),
            'currency': self.currency,
            'status': self.status,
            'stripePaymentIntentId': self.stripe_payment_intent_id,
            'stripeSessionId': self.stripe_session_id,
            'customerEmail': self.customer_email,
            'estimatedDelivery': self.estimated_delivery,
            'actualDelivery': self.actual_delivery,
            'assignedTo': self.assigned_to,
            'deliverables': list(self.deliverables or []),
            'notes': list(self.notes or []),
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }
