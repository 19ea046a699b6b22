import logging

from flask import Blueprint, request

from marketplace.auth import current_auth, role_required
from marketplace.errors import Forbidden, handles_errors, success
from marketplace.identity import get_identity
from marketplace.services import organization_service

logger = logging.getLogger(__name__)

organizations_bp = Blueprint('organizations', __name__)
identity_organizations_bp = Blueprint('identity_organizations', __name__)


@organizations_bp.route('/create-from-payment', methods=['POST'])
@handles_errors('Error al crear la organizacion')
@role_required()
def create_from_payment():
    """
    Create the caller's organization after a plan payment, or upgrade the one they have
    ---
    tags:
      - Organizations
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - name
            - slug
            - ownerId
            - plan
          properties:
            name:
              type: string
            slug:
              type: string
            ownerId:
              type: string
            plan:
              type: string
              enum: [basic, premium, enterprise]
            userEmail:
              type: string
            isPaymentUpgrade:
              type: boolean
    responses:
      200:
        description: Organization upgraded
      201:
        description: Organization created
      400:
        description: Missing fields or invalid slug
      403:
        description: ownerId is not the caller
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    owner_id = data.get('ownerId')
    if owner_id and owner_id != auth.user_id:
        raise Forbidden('No puedes crear una organizacion para otro usuario')

    logger.info(f"Creating/updating organization for user {owner_id} with plan {data.get('plan')}")
    org, created = organization_service.create_or_upgrade(
        owner_id,
        data.get('name'),
        data.get('slug'),
        data.get('plan'),
        user_email=data.get('userEmail') or auth.email or None,
        is_payment_upgrade=bool(data.get('isPaymentUpgrade')),
        identity=get_identity(),
    )
    message = 'Organizacion creada exitosamente' if created else 'Organizacion actualizada exitosamente'
    return success({'organization': org.to_dict(), 'message': message}, 201 if created else 200)


@organizations_bp.route('/request', methods=['POST'])
@handles_errors('Error al enviar la solicitud')
@role_required()
def request_organization():
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"POST /organizations/request - User: {auth.user_id}")

    request_doc = organization_service.submit_request(
        auth,
        data.get('organizationName'),
        description=data.get('description'),
        business_type=data.get('businessType'),
    )
    return success({
        'requestId': request_doc.id,
        'message': 'Solicitud de organización enviada. Te notificaremos cuando sea aprobada.',
    })


@identity_organizations_bp.route('/create', methods=['POST'])
@handles_errors('Error al crear la organizacion')
@role_required()
def create_identity_organization():
    """
    Create an organization in the identity provider and mirror it locally on the free plan
    ---
    tags:
      - Organizations
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - name
            - slug
          properties:
            name:
              type: string
            slug:
              type: string
    responses:
      201:
        description: Organization created
      400:
        description: Missing name or invalid slug
      409:
        description: Slug already in use
    """
    auth = current_auth()
    data = request.get_json(silent=True) or {}
    logger.info(f"POST /clerk-organizations/create - User: {auth.user_id}, slug: {data.get('slug')}")

    org, identity_org = organization_service.create_with_identity(
        auth, get_identity(), data.get('name'), data.get('slug'),
    )
    return success({'organization': org.to_dict(), 'identityOrganization': identity_org}, 201)
