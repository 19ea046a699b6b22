"""
Credit Service
Partner credit requests, their review, and the credit ledger.

A request is reviewed exactly once: the status change is a conditional
UPDATE on status='pending' and the ledger entry is written in the same
transaction, so an approved request never exists without its credit.
"""

import logging
import math
from decimal import Decimal, InvalidOperation

from flask import current_app

from marketplace.errors import CooldownActive, Forbidden, NotFound, ValidationError
from marketplace.extensions import DAY_MS, db, now_ms
from marketplace.models.credit import REVIEW_DECISIONS, Credit, CreditRequest

logger = logging.getLogger(__name__)


def _amount(value, message):
    if isinstance(value, bool) or value is None or value == '':
        raise ValidationError(message)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(message)
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(message)
    return amount


def _required_text(value, message):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value.strip()


def _expiry(now, expires_in_days):
    if expires_in_days in (None, '', 0):
        return None
    if isinstance(expires_in_days, bool):
        raise ValidationError('Dias de expiracion invalidos')
    try:
        days = float(expires_in_days)
    except (TypeError, ValueError):
        raise ValidationError('Dias de expiracion invalidos')
    if not math.isfinite(days) or days <= 0:
        raise ValidationError('Dias de expiracion invalidos')
    return now + int(days * DAY_MS)


def cooldown_ms():
    return current_app.config['CREDIT_REQUEST_COOLDOWN_DAYS'] * DAY_MS


def check_cooldown(partner_id, now):
    """Raise CooldownActive while the partner's latest rejection is inside the cooldown window."""
    last_rejection = (
        CreditRequest.query
        .filter_by(partner_id=partner_id, status='rejected')
        .filter(CreditRequest.reviewed_at.isnot(None))
        .order_by(CreditRequest.reviewed_at.desc())
        .first()
    )
    if not last_rejection:
        return

    remaining = cooldown_ms() - (now - last_rejection.reviewed_at)
    if remaining > 0:
        days_remaining = math.ceil(remaining / DAY_MS)
        raise CooldownActive(
            f"Debes esperar {days_remaining} dias mas para solicitar otro credito "
            f"despues de un rechazo",
            days_remaining,
        )


def submit_request(auth, amount, reason, justification, now=None):
    amount = _amount(amount, 'El monto debe ser mayor a 0')
    reason = _required_text(reason, 'La razon es requerida')
    justification = _required_text(justification, 'La justificacion es requerida')

    now = now or now_ms()
    check_cooldown(auth.user_id, now)

    credit_request = CreditRequest(
        partner_id=auth.user_id,
        partner_name=auth.display_name('Partner'),
        partner_email=auth.email,
        amount=amount,
        reason=reason,
        justification=justification,
        status='pending',
        created_at=now,
        updated_at=now,
    )
    db.session.add(credit_request)
    db.session.commit()

    logger.info(f"Credit request created by partner {auth.user_id} - Request ID: {credit_request.id}")
    return credit_request


def list_requests(status=None):
    query = CreditRequest.query
    if status:
        query = query.filter_by(status=status)
    return query.order_by(CreditRequest.created_at.desc()).all()


def list_partner_requests(partner_id):
    return (
        CreditRequest.query
        .filter_by(partner_id=partner_id)
        .order_by(CreditRequest.created_at.desc())
        .all()
    )


def review_request(auth, request_id, status, review_notes=None, expires_in_days=None,
                   counter_offer_amount=None, now=None):
    """
    Approve, reject or counter-offer a pending request.
    Returns (credit_request, credit); credit is None for rejections.
    """
    if status not in REVIEW_DECISIONS:
        raise ValidationError('Estado invalido')

    counter_offer = None
    if status == 'counter_offer':
        if not auth.has_role('SUPERADMIN'):
            raise Forbidden('Solo SUPERADMIN puede hacer contraofertas')
        counter_offer = _amount(counter_offer_amount, 'El monto de contraoferta es requerido')

    now = now or now_ms()
    expires_at = _expiry(now, expires_in_days)

    credit_request = db.session.get(CreditRequest, request_id)
    if not credit_request:
        raise NotFound('Solicitud no encontrada')
    if credit_request.status != 'pending':
        raise ValidationError('Esta solicitud ya fue revisada')

    reviewer_name = auth.display_name('Admin')
    requested_amount = credit_request.amount
    values = {
        'status': status,
        'review_notes': review_notes or '',
        'reviewed_at': now,
        'reviewed_by': auth.user_id,
        'reviewed_by_name': reviewer_name,
        'updated_at': now,
    }
    if counter_offer is not None:
        values['counter_offer_amount'] = counter_offer

    result = db.session.execute(
        db.update(CreditRequest)
        .where(CreditRequest.id == request_id, CreditRequest.status == 'pending')
        .values(**values)
    )
    if result.rowcount != 1:
        # someone else reviewed it between our read and the update
        db.session.rollback()
        raise ValidationError('Esta solicitud ya fue revisada')

    credit = None
    if status in ('approved', 'counter_offer'):
        credit = Credit(
            partner_id=credit_request.partner_id,
            partner_name=credit_request.partner_name,
            amount=counter_offer if counter_offer is not None else requested_amount,
            reason=credit_request.reason,
            granted_by=auth.user_id,
            granted_by_name=reviewer_name,
            used=False,
            expires_at=expires_at,
            request_id=request_id,
            is_counter_offer=counter_offer is not None,
            original_amount=requested_amount if counter_offer is not None else None,
            created_at=now,
        )
        db.session.add(credit)

    db.session.commit()

    if credit:
        logger.info(
            f"Credit granted from request {request_id} to partner {credit.partner_id} "
            f"- Amount: {credit.amount}"
        )
    logger.info(f"Credit request {request_id} {status} by admin {auth.user_id}")
    return credit_request, credit


def grant_credit(auth, identity, partner_id, amount, reason, expires_in_days=None, now=None):
    """Direct grant by an admin. The recipient must be a partner in the identity provider."""
    amount = _amount(amount, 'El monto debe ser mayor a 0')
    reason = _required_text(reason, 'La razon es requerida')
    now = now or now_ms()
    expires_at = _expiry(now, expires_in_days)

    partner = identity.get_user(partner_id)
    if not partner or partner.role != 'PARTNER':
        raise NotFound('Partner no encontrado')

    credit = Credit(
        partner_id=partner.id,
        partner_name=partner.name or 'Partner',
        amount=amount,
        reason=reason,
        granted_by=auth.user_id,
        granted_by_name=auth.display_name('Admin'),
        used=False,
        expires_at=expires_at,
        created_at=now,
    )
    db.session.add(credit)
    db.session.commit()

    logger.info(f"Credit granted to partner {partner.id} - Credit ID: {credit.id}")
    return credit


def partner_credits(partner_id, now=None):
    now = now or now_ms()
    credits = (
        Credit.query
        .filter_by(partner_id=partner_id)
        .order_by(Credit.created_at.desc())
        .all()
    )
    total_available = sum((c.amount for c in credits if c.is_available(now)), Decimal('0'))
    total_used = sum((c.amount for c in credits if c.used), Decimal('0'))
    return {
        'credits': [c.to_dict() for c in credits],
        'totalAvailable': float(total_available),
        'totalUsed': float(total_used),
        'total': len(credits),
    }
