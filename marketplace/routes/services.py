import logging

from flask import Blueprint, request

from marketplace.auth import STAFF_ROLES, current_auth, role_required
from marketplace.errors import Forbidden, NotFound, ValidationError, handles_errors, success
from marketplace.services import service_order_service

logger = logging.getLogger(__name__)

services_bp = Blueprint('services', __name__)

MAX_PAGE_SIZE = 100


def _int_arg(name, default, minimum):
    raw = request.args.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"Parametro '{name}' invalido")
    if value < minimum:
        raise ValidationError(f"Parametro '{name}' invalido")
    return value


@services_bp.route('/create-order', methods=['POST'])
@handles_errors('Error al crear la orden de servicio')
@role_required()
def create_order():
    """
    Create a service order for the caller (status pending)
    ---
    tags:
      - Service Orders
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - serviceType
            - serviceName
            - propertyAddress
            - contactPhone
            - amount
          properties:
            serviceType:
              type: string
              enum: [photography, legal, virtual-tour, home-staging, market-analysis, documentation]
            serviceName:
              type: string
            serviceDescription:
              type: string
            propertyAddress:
              type: string
            contactPhone:
              type: string
            preferredDate:
              type: string
            specialRequests:
              type: string
            amount:
              type: number
            currency:
              type: string
            customerEmail:
              type: string
            stripePaymentIntentId:
              type: string
            stripeSessionId:
              type: string
    responses:
      201:
        description: Order created
      400:
        description: Missing fields, unknown service type or non-positive amount
      409:
        description: An order already exists for stripeSessionId
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"POST /services/create-order - User: {auth.user_id}, type: {data.get('serviceType')}")

    order = service_order_service.create_order({
        'user_id': auth.user_id,
        'service_type': data.get('serviceType'),
        'service_name': data.get('serviceName'),
        'service_description': data.get('serviceDescription'),
        'property_address': data.get('propertyAddress'),
        'contact_phone': data.get('contactPhone'),
        'preferred_date': data.get('preferredDate'),
        'special_requests': data.get('specialRequests'),
        'amount': data.get('amount'),
        'currency': data.get('currency'),
        'customer_email': data.get('customerEmail') or auth.email,
        'stripe_payment_intent_id': data.get('stripePaymentIntentId'),
        'stripe_session_id': data.get('stripeSessionId'),
    })
    return success(order.to_dict(), 201)


@services_bp.route('/orders', methods=['GET'])
@handles_errors('Error al obtener las ordenes de servicio')
@role_required()
def list_orders():
    """
    Caller's service orders, newest first
    ---
    tags:
      - Service Orders
    security:
      - Bearer: []
    parameters:
      - in: query
        name: status
        type: string
      - in: query
        name: limit
        type: integer
        default: 10
      - in: query
        name: offset
        type: integer
        default: 0
    responses:
      200:
        description: "{data, pagination{total, limit, offset, hasMore}}"
    """
    auth = current_auth()
    status = request.args.get('status') or None
    limit = min(_int_arg('limit', 10, 1), MAX_PAGE_SIZE)
    offset = _int_arg('offset', 0, 0)
    logger.info(f"GET /services/orders - User: {auth.user_id}, status: {status}")

    orders, total = service_order_service.get_orders_by_user(
        auth.user_id, status=status, limit=limit, offset=offset,
    )
    return success({
        'data': [o.to_dict() for o in orders],
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'hasMore': offset + limit < total,
        },
    })


@services_bp.route('/orders/<order_id>', methods=['GET'])
@handles_errors('Error al obtener la orden de servicio')
@role_required()
def get_order(order_id):
    auth = current_auth()
    order = service_order_service.get_order_by_id(order_id)
    if not order:
        raise NotFound('Orden no encontrada')
    if order.user_id != auth.user_id and not auth.has_role(*STAFF_ROLES):
        raise Forbidden('No tienes permisos para ver esta orden')
    return success(order.to_dict())


@services_bp.route('/orders/<order_id>/status', methods=['PATCH'])
@handles_errors('Error al actualizar la orden de servicio')
@role_required(*STAFF_ROLES, message='No tienes permisos para actualizar ordenes')
def update_order_status(order_id):
    """
    Move a service order through its lifecycle
    ---
    tags:
      - Service Orders
    security:
      - Bearer: []
    parameters:
      - in: path
        name: order_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - event
          properties:
            event:
              type: string
              enum: [confirm, start_progress, complete, cancel, assign, add_note]
            deliverables:
              type: array
              items:
                type: string
            note:
              type: string
            assignedTo:
              type: string
            estimatedDelivery:
              type: string
    responses:
      200:
        description: Updated order
      404:
        description: Order not found
      409:
        description: Event not allowed from the current status
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    event = data.get('event')
    logger.info(f"PATCH /services/orders/{order_id}/status - {event} by {auth.user_id}")

    deliverables = data.get('deliverables')
    if deliverables is not None and not isinstance(deliverables, list):
        raise ValidationError('Los entregables deben ser una lista')

    order = service_order_service.update_order_status(
        order_id,
        event,
        deliverables=deliverables,
        note=data.get('note'),
        assigned_to=data.get('assignedTo'),
        estimated_delivery=data.get('estimatedDelivery'),
    )
    return success(order.to_dict())


@services_bp.route('/stats', methods=['GET'])
@handles_errors('Error al obtener estadisticas de servicios')
@role_required()
def stats():
    auth = current_auth()
    logger.info(f"GET /services/stats - User: {auth.user_id}")
    return success(service_order_service.get_stats(auth.user_id))
