"""
Verification Service
Partners submit documents and bank details; admins set the outcome.
"""

import logging

from marketplace.errors import NotFound, ValidationError
from marketplace.extensions import db, now_ms
from marketplace.models.verification import REVIEW_STATUSES, PartnerVerification

logger = logging.getLogger(__name__)


def get_verification(partner_id):
    return db.session.get(PartnerVerification, partner_id)


def get_status(partner_id, include_partner=False):
    verification = get_verification(partner_id)
    if not verification:
        return PartnerVerification.not_started()
    return verification.to_dict(include_partner=include_partner)


def submit(auth, documents, bank_info, now=None):
    """
    Insert the partner's verification or overwrite the previous submission.
    Either way the status goes back to pending.
    """
    if not documents or not bank_info:
        raise ValidationError('Documentos e informacion bancaria son requeridos')

    now = now or now_ms()
    verification = get_verification(auth.user_id)
    if verification:
        verification.documents = documents
        verification.bank_info = bank_info
        verification.status = 'pending'
        verification.submitted_at = now
        verification.updated_at = now
    else:
        verification = PartnerVerification(
            partner_id=auth.user_id,
            partner_name=auth.display_name('Partner'),
            partner_email=auth.email,
            status='pending',
            documents=documents,
            bank_info=bank_info,
            submitted_at=now,
            updated_at=now,
        )
        db.session.add(verification)

    db.session.commit()
    logger.info(f"Verification submitted by partner {auth.user_id}")
    return verification


def review(auth, partner_id, status, review_notes=None, now=None):
    if not status:
        raise ValidationError('El estado es requerido')
    if status not in REVIEW_STATUSES:
        raise ValidationError('Estado invalido')

    verification = get_verification(partner_id)
    if not verification:
        raise NotFound('Verificacion no encontrada')

    now = now or now_ms()
    verification.status = status
    verification.review_notes = review_notes or ''
    verification.reviewed_at = now
    verification.reviewed_by = auth.user_id
    verification.reviewed_by_name = auth.display_name('Admin')
    verification.updated_at = now
    db.session.commit()

    logger.info(f"Verification {status} for partner {partner_id} by admin {auth.user_id}")
    return verification
