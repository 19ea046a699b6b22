import logging

from flask import Blueprint, request

from marketplace.auth import current_auth, role_required
from marketplace.errors import handles_errors, success
from marketplace.services import credit_service, messaging_service, verification_service

logger = logging.getLogger(__name__)

partner_bp = Blueprint('partner', __name__)

PARTNER_ONLY = 'Solo los partners pueden acceder a esta informacion'


@partner_bp.route('/credit-request', methods=['GET'])
@handles_errors('Error al obtener solicitudes')
@role_required('PARTNER', message=PARTNER_ONLY)
def my_credit_requests():
    auth = current_auth()
    logger.info(f"GET /partner/credit-request - Partner: {auth.user_id}")

    requests_ = credit_service.list_partner_requests(auth.user_id)
    logger.info(f"Found {len(requests_)} credit requests for partner {auth.user_id}")
    return success({
        'requests': [r.to_dict(include_partner=False) for r in requests_],
        'total': len(requests_),
    })


@partner_bp.route('/credit-request', methods=['POST'])
@handles_errors('Error al crear solicitud')
@role_required('PARTNER', message='Solo los partners pueden solicitar creditos')
def request_credit():
    """
    Ask for credit
    ---
    tags:
      - Credit Requests
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - amount
            - reason
            - justification
          properties:
            amount:
              type: number
            reason:
              type: string
            justification:
              type: string
    responses:
      200:
        description: Request created as pending
      400:
        description: Invalid input, or COOLDOWN_ACTIVE after a recent rejection
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"POST /partner/credit-request - Partner: {auth.user_id}, amount: {data.get('amount')}")

    credit_request = credit_service.submit_request(
        auth, data.get('amount'), data.get('reason'), data.get('justification'),
    )
    return success({
        'requestId': credit_request.id,
        'message': 'Solicitud de credito enviada exitosamente',
    })


@partner_bp.route('/credits', methods=['GET'])
@handles_errors('Error al obtener creditos')
@role_required('PARTNER', message=PARTNER_ONLY)
def my_credits():
    """
    Partner's credit ledger with available and used totals
    ---
    tags:
      - Credits
    security:
      - Bearer: []
    responses:
      200:
        description: "{credits, totalAvailable, totalUsed, total}"
    """
    auth = current_auth()
    logger.info(f"GET /partner/credits - Partner: {auth.user_id}")
    return success(credit_service.partner_credits(auth.user_id))


@partner_bp.route('/verification', methods=['GET'])
@handles_errors('Error al obtener verificacion')
@role_required('PARTNER', message=PARTNER_ONLY)
def my_verification():
    auth = current_auth()
    logger.info(f"GET /partner/verification - Partner: {auth.user_id}")
    return success(verification_service.get_status(auth.user_id))


@partner_bp.route('/verification', methods=['POST'])
@handles_errors('Error al enviar verificacion')
@role_required('PARTNER', message='Solo los partners pueden enviar verificacion')
def submit_verification():
    """
    Submit (or resubmit) verification documents and bank details
    ---
    tags:
      - Verification
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - documents
            - bankInfo
          properties:
            documents:
              type: object
            bankInfo:
              type: object
    responses:
      200:
        description: Verification stored with status pending
      400:
        description: Documents or bank info missing
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"POST /partner/verification - Partner: {auth.user_id}")

    verification_service.submit(auth, data.get('documents'), data.get('bankInfo'))
    return success({'message': 'Verificacion enviada exitosamente', 'status': 'pending'})


@partner_bp.route('/messages', methods=['GET'])
@handles_errors('Error al obtener mensajes')
@role_required('PARTNER', message=PARTNER_ONLY)
def my_messages():
    """
    Messages of the partner's open conversation, oldest first
    ---
    tags:
      - Messaging
    security:
      - Bearer: []
    responses:
      200:
        description: "{messages, total, conversationClosed, conversationStatus}"
    """
    auth = current_auth()
    logger.info(f"GET /partner/messages - Partner: {auth.user_id}")
    return success(messaging_service.list_messages(auth.user_id))


@partner_bp.route('/messages', methods=['POST'])
@handles_errors('Error al enviar mensaje')
@role_required('PARTNER', message='Solo los partners pueden enviar mensajes')
def send_message():
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"POST /partner/messages - Partner: {auth.user_id}")

    partner_message = messaging_service.post_message(
        auth.user_id,
        auth.display_name('Partner'),
        auth.user_id,
        auth.display_name('Partner'),
        data.get('message'),
        sent_by_admin=False,
    )
    return success({'messageId': partner_message.id, 'message': 'Mensaje enviado exitosamente'})
