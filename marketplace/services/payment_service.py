"""
Payment Service
Stripe checkout sessions for agency plans and one-off services, and the
webhook that turns a completed checkout into an organization or a
confirmed service order.
"""

import json
import logging

import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError

from marketplace.errors import ValidationError
from marketplace.extensions import db
from marketplace.models.checkout import ProcessedCheckoutSession
from marketplace.services import organization_service
from marketplace.services.service_order_service import build_order, get_order_by_session

logger = logging.getLogger(__name__)

DEFAULT_ORGANIZATION_NAME = 'Mi Organización'


def _unit_amount(price):
    if isinstance(price, bool):
        raise ValidationError('Precio invalido')
    try:
        cents = int(round(float(price) * 100))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError('Precio invalido')
    if cents <= 0:
        raise ValidationError('Precio invalido')
    return cents


def _currency(currency):
    return (currency or current_app.config['DEFAULT_CURRENCY']).lower()


def _return_url(path):
    base = current_app.config['APP_BASE_URL'].rstrip('/')
    return f"{base}{path}?session_id={{CHECKOUT_SESSION_ID}}"


def create_plan_checkout(auth, plan_id, plan_name, price, currency=None, user_email=None):
    """Embedded subscription checkout for an agency plan."""
    if not plan_id or not plan_name or not price:
        raise ValidationError('Falta informacion de pago requerida')

    session = stripe.checkout.Session.create(
        api_key=current_app.config['STRIPE_SECRET_KEY'],
        ui_mode='embedded',
        payment_method_types=['card'],
        line_items=[{
            'price_data': {
                'currency': _currency(currency),
                'product_data': {
                    'name': f"Plan {plan_name} - Livinning Agency",
                    'description': f"Suscripción mensual al plan {plan_name}",
                },
                'unit_amount': _unit_amount(price),
                'recurring': {'interval': 'month'},
            },
            'quantity': 1,
        }],
        mode='subscription',
        return_url=_return_url('/upgrade-success'),
        client_reference_id=auth.user_id,
        customer_email=user_email or auth.email or None,
        metadata={
            'planId': plan_id,
            'planName': plan_name,
            'userId': auth.user_id,
        },
    )
    logger.info(f"Plan checkout {session.id} created for user {auth.user_id} ({plan_id})")
    return {'clientSecret': session.client_secret, 'checkoutId': session.id}


def create_service_checkout(auth, data):
    """Embedded one-time checkout for a service; the order fields travel in the metadata."""
    service_id = data.get('serviceId')
    service_name = data.get('serviceName')
    price = data.get('price')
    if not service_id or not service_name or not price:
        raise ValidationError('Falta informacion del servicio requerida')

    property_address = data.get('propertyAddress') or ''
    preferred_date = data.get('preferredDate') or ''

    session = stripe.checkout.Session.create(
        api_key=current_app.config['STRIPE_SECRET_KEY'],
        ui_mode='embedded',
        payment_method_types=['card'],
        line_items=[{
            'price_data': {
                'currency': _currency(data.get('currency')),
                'product_data': {
                    'name': f"{service_name} - Servicio Profesional",
                    'description': (
                        f"Servicio profesional de {service_name} para tu propiedad en {property_address}"
                    ),
                    'metadata': {
                        'preferredDate': preferred_date,
                        'propertyAddress': property_address,
                    },
                },
                'unit_amount': _unit_amount(price),
            },
            'quantity': 1,
        }],
        mode='payment',
        return_url=_return_url('/services/success'),
        client_reference_id=auth.user_id,
        customer_email=data.get('userEmail') or auth.email or None,
        metadata={
            'serviceId': service_id,
            'serviceName': service_name,
            'userId': auth.user_id,
            'propertyAddress': property_address,
            'contactPhone': data.get('contactPhone') or '',
            'preferredDate': preferred_date,
            'specialRequests': data.get('specialRequests') or '',
        },
    )
    logger.info(f"Service checkout {session.id} created for user {auth.user_id} ({service_id})")
    return {'clientSecret': session.client_secret, 'checkoutId': session.id}


def verify_webhook(payload, sig_header):
    """Check the Stripe-Signature header and return the decoded event."""
    if not sig_header:
        raise ValidationError('No signature provided')
    try:
        stripe.WebhookSignature.verify_header(
            payload, sig_header, current_app.config['STRIPE_WEBHOOK_SECRET']
        )
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise ValidationError('Invalid signature')

    try:
        return json.loads(payload)
    except ValueError:
        raise ValidationError('Invalid payload')


def already_processed(session_id):
    return db.session.get(ProcessedCheckoutSession, session_id) is not None


def _is_replay(session_id):
    db.session.rollback()
    return already_processed(session_id)


def _fulfil_plan(checkout, user_id, identity):
    metadata = checkout.get('metadata') or {}
    marker = ProcessedCheckoutSession(session_id=checkout['id'], kind='plan')
    db.session.add(marker)

    billing = {
        key: value for key, value in (
            ('stripeCustomerId', checkout.get('customer')),
            ('stripeSubscriptionId', checkout.get('subscription')),
        ) if value
    }
    try:
        org, created = organization_service.create_or_upgrade(
            owner_id=user_id,
            name=metadata.get('organizationName') or DEFAULT_ORGANIZATION_NAME,
            slug=metadata.get('organizationSlug') or organization_service.default_slug(user_id),
            plan=metadata['planId'],
            user_email=checkout.get('customer_email'),
            is_payment_upgrade=True,
            identity=identity,
            billing=billing,
        )
    except ValidationError as e:
        db.session.rollback()
        logger.error(f"Checkout {checkout['id']} carries an invalid organization: {e.message}")
        return 'invalid_organization'
    marker.reference_id = org.id
    db.session.commit()
    return 'organization_created' if created else 'organization_upgraded'


def _confirm_existing(checkout, order, user_id):
    """The order was created directly with this session id; the payment confirms it."""
    if order.user_id != user_id:
        logger.error(
            f"Checkout {checkout['id']} paid by {user_id} but order {order.id} belongs to {order.user_id}"
        )
        return 'invalid_order'

    if order.status == 'pending':
        order.apply('confirm')
    if not order.stripe_payment_intent_id and checkout.get('payment_intent'):
        order.stripe_payment_intent_id = checkout['payment_intent']
    db.session.add(ProcessedCheckoutSession(
        session_id=checkout['id'], kind='service', reference_id=order.id,
    ))
    db.session.commit()
    logger.info(f"Service order confirmed: {order.id} (status: {order.status})")
    return 'service_order_confirmed'


def _fulfil_service(checkout, user_id):
    existing = get_order_by_session(checkout['id'])
    if existing:
        return _confirm_existing(checkout, existing, user_id)

    metadata = checkout.get('metadata') or {}
    try:
        order = build_order({
            'user_id': user_id,
            'service_type': metadata.get('serviceId'),
            'service_name': metadata.get('serviceName'),
            'service_description': f"Professional {metadata.get('serviceName')} service",
            'property_address': metadata.get('propertyAddress'),
            'contact_phone': metadata.get('contactPhone'),
            'preferred_date': metadata.get('preferredDate'),
            'special_requests': metadata.get('specialRequests'),
            'amount': (checkout.get('amount_total') or 0) / 100,
            'currency': checkout.get('currency'),
            'customer_email': checkout.get('customer_email'),
            'stripe_payment_intent_id': checkout.get('payment_intent'),
            'stripe_session_id': checkout['id'],
        }, status='confirmed')
    except ValidationError as e:
        logger.error(f"Checkout {checkout['id']} carries an invalid service order: {e.message}")
        return 'invalid_order'

    db.session.add(order)
    db.session.add(ProcessedCheckoutSession(
        session_id=checkout['id'], kind='service', reference_id=order.id,
    ))
    db.session.commit()
    logger.info(f"Service order created: {order.id}")
    return 'service_order_created'


def handle_checkout_completed(checkout, identity=None):
    """
    Apply a completed checkout exactly once. Returns a short outcome label;
    replays of an already processed session return 'duplicate'.
    """
    session_id = checkout.get('id')
    user_id = checkout.get('client_reference_id')
    if not session_id or not user_id:
        logger.error('Missing required userId in checkout session')
        return 'ignored'
    if checkout.get('payment_status') == 'unpaid':
        logger.info(f"Checkout session {session_id} completed without payment yet")
        return 'unpaid'
    if already_processed(session_id):
        logger.info(f"Checkout session {session_id} already processed")
        return 'duplicate'

    metadata = checkout.get('metadata') or {}
    try:
        if metadata.get('planId'):
            outcome = _fulfil_plan(checkout, user_id, identity)
        elif metadata.get('serviceId'):
            outcome = _fulfil_service(checkout, user_id)
        else:
            logger.warning(f"Checkout session {session_id} has neither planId nor serviceId")
            outcome = 'ignored'
    except IntegrityError:
        if _is_replay(session_id):
            logger.info(f"Checkout session {session_id} processed concurrently")
            return 'duplicate'
        existing = get_order_by_session(session_id) if metadata.get('serviceId') else None
        if not existing:
            raise
        # the order was created directly while this event was being handled
        outcome = _confirm_existing(checkout, existing, user_id)

    logger.info(f"Checkout session completed: {session_id} ({outcome})")
    return outcome


def handle_event(event, identity=None):
    event_type = event.get('type')
    obj = (event.get('data') or {}).get('object') or {}

    if event_type == 'checkout.session.completed':
        return handle_checkout_completed(obj, identity=identity)
    if event_type in ('customer.subscription.updated', 'customer.subscription.deleted'):
        logger.info(f"Subscription updated: {obj.get('id')}")
    elif event_type == 'invoice.payment_failed':
        logger.info(f"Payment failed for invoice: {obj.get('id')}")
    else:
        logger.info(f"Unhandled event type: {event_type}")
    return 'acknowledged'
