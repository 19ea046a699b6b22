import logging

from flask import Blueprint, jsonify, request

from marketplace.auth import current_auth, role_required
from marketplace.errors import handles_errors, success
from marketplace.identity import get_identity
from marketplace.services import payment_service

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__)


@payments_bp.route('/create-checkout', methods=['POST'])
@handles_errors('Error al crear la sesion de pago')
@role_required()
def create_checkout():
    """
    Create an embedded Stripe subscription checkout for an agency plan
    ---
    tags:
      - Payments
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - planId
            - planName
            - price
          properties:
            planId:
              type: string
            planName:
              type: string
            price:
              type: number
            currency:
              type: string
            userEmail:
              type: string
    responses:
      200:
        description: "{clientSecret, checkoutId}"
      400:
        description: Missing payment information
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"POST /payments/create-checkout - User: {auth.user_id}, plan: {data.get('planId')}")

    return success(payment_service.create_plan_checkout(
        auth,
        data.get('planId'),
        data.get('planName'),
        data.get('price'),
        currency=data.get('currency'),
        user_email=data.get('userEmail'),
    ))


@payments_bp.route('/create-service-checkout', methods=['POST'])
@handles_errors('Error al crear la sesion de pago')
@role_required()
def create_service_checkout():
    """
    Create an embedded Stripe one-time checkout for a service
    ---
    tags:
      - Payments
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - serviceId
            - serviceName
            - price
          properties:
            serviceId:
              type: string
            serviceName:
              type: string
            price:
              type: number
            currency:
              type: string
            userEmail:
              type: string
            propertyAddress:
              type: string
            contactPhone:
              type: string
            preferredDate:
              type: string
            specialRequests:
              type: string
    responses:
      200:
        description: "{clientSecret, checkoutId}"
      400:
        description: Missing service information
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(
        f"POST /payments/create-service-checkout - User: {auth.user_id}, service: {data.get('serviceId')}"
    )
    return success(payment_service.create_service_checkout(auth, data))


@payments_bp.route('/webhook', methods=['POST'])
@handles_errors('Error al procesar el webhook')
def stripe_webhook():
    """
    Handle Stripe Webhooks
    ---
    tags:
      - Payments
    responses:
      200:
        description: Event processed (or already processed)
      400:
        description: Missing or invalid signature
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get('Stripe-Signature')

    event = payment_service.verify_webhook(payload, sig_header)
    logger.info(f"Stripe event {event.get('id')} ({event.get('type')}) received")

    outcome = payment_service.handle_event(event, identity=get_identity())
    return jsonify({'received': True, 'outcome': outcome}), 200
