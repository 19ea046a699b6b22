import logging

from flask import Blueprint, request

from marketplace.auth import ADMIN_ROLES, STAFF_ROLES, current_auth, role_required
from marketplace.errors import NotFound, ValidationError, handles_errors, success
from marketplace.identity import get_identity
from marketplace.services import credit_service, messaging_service, verification_service

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)

REVIEW_MESSAGES = {
    'approved': 'Solicitud aprobada exitosamente',
    'rejected': 'Solicitud rechazada exitosamente',
    'counter_offer': 'Contraoferta enviada exitosamente',
}


@admin_bp.route('/credit-requests', methods=['GET'])
@handles_errors('Error al obtener solicitudes')
@role_required(*ADMIN_ROLES, message='Solo ADMIN y SUPERADMIN pueden ver solicitudes')
def list_credit_requests():
    """
    List partner credit requests, newest first
    ---
    tags:
      - Credit Requests
    security:
      - Bearer: []
    parameters:
      - in: query
        name: status
        type: string
        enum: [pending, approved, rejected, counter_offer]
    responses:
      200:
        description: "{requests, total}"
      401:
        description: Not authenticated
      403:
        description: Caller is not ADMIN or SUPERADMIN
    """
    status = request.args.get('status')
    logger.info(f"GET /admin/credit-requests - Admin: {current_auth().user_id}, status: {status}")

    requests_ = credit_service.list_requests(status=status)
    logger.info(f"Found {len(requests_)} credit requests")
    return success({
        'requests': [r.to_dict() for r in requests_],
        'total': len(requests_),
    })


@admin_bp.route('/credit-requests/<request_id>', methods=['PUT'])
@handles_errors('Error al actualizar solicitud')
@role_required(*ADMIN_ROLES, message='Solo ADMIN y SUPERADMIN pueden revisar solicitudes')
def review_credit_request(request_id):
    """
    Approve, reject or counter-offer a pending credit request
    ---
    tags:
      - Credit Requests
    security:
      - Bearer: []
    parameters:
      - in: path
        name: request_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - status
          properties:
            status:
              type: string
              enum: [approved, rejected, counter_offer]
            reviewNotes:
              type: string
            expiresInDays:
              type: number
            counterOfferAmount:
              type: number
              description: SUPERADMIN only
    responses:
      200:
        description: Request reviewed; a credit is granted on approval or counter offer
      400:
        description: Invalid status, missing counter offer amount or already reviewed
      403:
        description: Role not allowed
      404:
        description: Request not found
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    logger.info(f"PUT /admin/credit-requests/{request_id} - Admin: {auth.user_id}, status: {status}")

    credit_request, credit = credit_service.review_request(
        auth,
        request_id,
        status,
        review_notes=data.get('reviewNotes'),
        expires_in_days=data.get('expiresInDays'),
        counter_offer_amount=data.get('counterOfferAmount'),
    )
    payload = {'message': REVIEW_MESSAGES[status], 'request': credit_request.to_dict()}
    if credit:
        payload['creditId'] = credit.id
    return success(payload)


@admin_bp.route('/partners/<partner_id>/verification', methods=['GET'])
@handles_errors('Error al obtener verificacion')
@role_required(*ADMIN_ROLES, message='Solo ADMIN y SUPERADMIN pueden revisar verificaciones')
def get_partner_verification(partner_id):
    logger.info(f"GET /admin/partners/{partner_id}/verification - Admin: {current_auth().user_id}")
    return success(verification_service.get_status(partner_id, include_partner=True))


@admin_bp.route('/partners/<partner_id>/verification', methods=['PUT'])
@handles_errors('Error al actualizar verificacion')
@role_required(*ADMIN_ROLES, message='Solo ADMIN y SUPERADMIN pueden actualizar verificaciones')
def review_partner_verification(partner_id):
    """
    Set the outcome of a partner's verification
    ---
    tags:
      - Verification
    security:
      - Bearer: []
    parameters:
      - in: path
        name: partner_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - status
          properties:
            status:
              type: string
              enum: [in_review, verified, rejected, resubmit_required]
            reviewNotes:
              type: string
    responses:
      200:
        description: Verification updated
      400:
        description: Missing or invalid status
      404:
        description: Partner has not submitted a verification
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"PUT /admin/partners/{partner_id}/verification - Admin: {auth.user_id}")

    verification = verification_service.review(
        auth, partner_id, data.get('status'), review_notes=data.get('reviewNotes'),
    )
    return success({
        'message': 'Verificacion actualizada exitosamente',
        'verification': verification.to_dict(include_partner=True),
    })


@admin_bp.route('/partners/<partner_id>/conversation', methods=['POST'])
@handles_errors('Error al cerrar conversacion')
@role_required(*STAFF_ROLES, message='No tienes permisos para cerrar conversaciones')
def close_partner_conversation(partner_id):
    """
    Close the partner's open conversation
    ---
    tags:
      - Messaging
    security:
      - Bearer: []
    parameters:
      - in: path
        name: partner_id
        type: string
        required: true
      - in: body
        name: body
        schema:
          type: object
          properties:
            reason:
              type: string
    responses:
      200:
        description: Conversation closed
      404:
        description: No open conversation
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"POST /admin/partners/{partner_id}/conversation - Closing by {auth.user_id}")

    messaging_service.close_conversation(auth, partner_id, reason=data.get('reason'))
    return success({'message': 'Conversacion cerrada exitosamente'})


@admin_bp.route('/partners/<partner_id>/message', methods=['POST'])
@handles_errors('Error al enviar mensaje')
@role_required(*STAFF_ROLES, message='No tienes permisos para enviar mensajes')
def message_partner(partner_id):
    """
    Send a message to a partner, opening a conversation if none is open
    ---
    tags:
      - Messaging
    security:
      - Bearer: []
    parameters:
      - in: path
        name: partner_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - message
          properties:
            message:
              type: string
    responses:
      200:
        description: Message stored
      400:
        description: Empty message
      404:
        description: Recipient is not a partner
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    message = data.get('message')
    if not isinstance(message, str) or not message.strip():
        raise ValidationError('El mensaje es requerido')

    partner = get_identity().get_user(partner_id)
    if not partner or partner.role != 'PARTNER':
        raise NotFound('Partner no encontrado')

    logger.info(f"POST /admin/partners/{partner_id}/message - From {auth.user_id}")
    partner_message = messaging_service.post_message(
        partner.id,
        partner.name or 'Partner',
        auth.user_id,
        auth.display_name('Admin'),
        message,
        sent_by_admin=True,
    )
    logger.info(f"Message sent to partner {partner_id} - Message ID: {partner_message.id}")
    return success({'messageId': partner_message.id, 'message': 'Mensaje enviado exitosamente'})


@admin_bp.route('/partners/<partner_id>/credits', methods=['POST'])
@handles_errors('Error al otorgar credito')
@role_required(*ADMIN_ROLES, message='Solo ADMIN y SUPERADMIN pueden otorgar creditos')
def grant_partner_credit(partner_id):
    """
    Grant a credit to a partner directly
    ---
    tags:
      - Credits
    security:
      - Bearer: []
    parameters:
      - in: path
        name: partner_id
        type: string
        required: true
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - amount
            - reason
          properties:
            amount:
              type: number
            reason:
              type: string
            expiresInDays:
              type: number
    responses:
      200:
        description: Credit granted
      400:
        description: Invalid amount or reason
      404:
        description: Partner not found
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(
        f"POST /admin/partners/{partner_id}/credits - Granting {data.get('amount')} by {auth.user_id}"
    )

    credit = credit_service.grant_credit(
        auth,
        get_identity(),
        partner_id,
        data.get('amount'),
        data.get('reason'),
        expires_in_days=data.get('expiresInDays'),
    )
    return success({'creditId': credit.id, 'message': 'Credito otorgado exitosamente'})
