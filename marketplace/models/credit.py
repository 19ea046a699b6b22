"""
Partner credit models.
CreditRequest status: pending | approved | rejected | counter_offer
Credit rows form an append-only ledger.
"""

import uuid

from marketplace.extensions import db, now_ms

REQUEST_STATUSES = ('pending', 'approved', 'rejected', 'counter_offer')
REVIEW_DECISIONS = ('approved', 'rejected', 'counter_offer')


class CreditRequest(db.Model):
    __tablename__ = 'partner_credit_requests'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    partner_id = db.Column(db.String(64), nullable=False, index=True)
    partner_name = db.Column(db.String(255), nullable=False)
    partner_email = db.Column(db.String(255), nullable=False, default='')
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    justification = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.Enum(*REQUEST_STATUSES, name='credit_request_status'),
        nullable=False,
        default='pending',
        index=True,
    )
    review_notes = db.Column(db.Text)
    reviewed_at = db.Column(db.BigInteger)
    reviewed_by = db.Column(db.String(64))
    reviewed_by_name = db.Column(db.String(255))
    counter_offer_amount = db.Column(db.Numeric(12, 2))
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms, index=True)
    updated_at = db.Column(db.BigInteger, nullable=False, default=now_ms, onupdate=now_ms)

    def to_dict(self, include_partner=True):
        data = {
            'id': self.id,
            'amount': float(self.amount),
            'reason': self.reason,
            'justification': self.justification,
            'status': self.status,
            'createdAt': self.created_at,
            'reviewedAt': self.reviewed_at,
            'reviewedBy': self.reviewed_by,
            'reviewedByName': self.reviewed_by_name,
            'reviewNotes': self.review_notes,
            'counterOfferAmount': (
                float(self.counter_offer_amount) if self.counter_offer_amount is not None else None
            ),
        }
        if include_partner:
            data.update({
                'partnerId': self.partner_id,
                'partnerName': self.partner_name,
                'partnerEmail': self.partner_email,
            })
        return data


class Credit(db.Model):
    __tablename__ = 'partner_credits'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    partner_id = db.Column(db.String(64), nullable=False, index=True)
    partner_name = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    granted_by = db.Column(db.String(64), nullable=False)
    granted_by_name = db.Column(db.String(255), nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.BigInteger)
    expires_at = db.Column(db.BigInteger)
    request_id = db.Column(db.String(36), db.ForeignKey('partner_credit_requests.id'))
    is_counter_offer = db.Column(db.Boolean, nullable=False, default=False)
    original_amount = db.Column(db.Numeric(12, 2))
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms, index=True)

    def is_available(self, now):
        return not self.used and (self.expires_at is None or self.expires_at > now)

    def to_dict(self):
        return {
            'id': self.id,
            'partnerId': self.partner_id,
            'partnerName': self.partner_name,
            'amount': float(self.amount),
            'reason': self.reason,
            'grantedBy': self.granted_by,
            'grantedByName': self.granted_by_name,
            'createdAt': self.created_at,
            'used': self.used,
            'usedAt': self.used_at,
            'expiresAt': self.expires_at,
            'requestId': self.request_id,
            'isCounterOffer': self.is_counter_offer,
            'originalAmount': float(self.original_amount) if self.original_amount is not None else None,
        }
