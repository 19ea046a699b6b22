"""
PartnerVerification: one row per partner.
Status: pending | in_review | verified | rejected | resubmit_required
(no row at all means not_started)
"""

from marketplace.extensions import JSONType, db, now_ms

REVIEW_STATUSES = ('in_review', 'verified', 'rejected', 'resubmit_required')
VERIFICATION_STATUSES = ('pending',) + REVIEW_STATUSES


class PartnerVerification(db.Model):
    __tablename__ = 'partner_verifications'

    partner_id = db.Column(db.String(64), primary_key=True)
    partner_name = db.Column(db.String(255), nullable=False)
    partner_email = db.Column(db.String(255), nullable=False, default='')
    status = db.Column(
        db.Enum(*VERIFICATION_STATUSES, name='verification_status'),
        nullable=False,
        default='pending',
    )
    documents = db.Column(JSONType, nullable=False)
    bank_info = db.Column(JSONType, nullable=False)
    submitted_at = db.Column(db.BigInteger, nullable=False, default=now_ms)
    review_notes = db.Column(db.Text)
    reviewed_at = db.Column(db.BigInteger)
    reviewed_by = db.Column(db.String(64))
    reviewed_by_name = db.Column(db.String(255))
    updated_at = db.Column(db.BigInteger, nullable=False, default=now_ms, onupdate=now_ms)

    @staticmethod
    def not_started():
        return {
            'status': 'not_started',
            'documents': {},
            'bankInfo': None,
            'submittedAt': None,
            'reviewedAt': None,
            'reviewedBy': None,
            'reviewNotes': None,
        }

    def to_dict(self, include_partner=False):
        data = {
            'status': self.status,
            'documents': self.documents or {},
            'bankInfo': self.bank_info or None,
            'submittedAt': self.submitted_at,
            'reviewedAt': self.reviewed_at,
            'reviewedBy': self.reviewed_by,
            'reviewNotes': self.review_notes or None,
        }
        if include_partner:
            data['partnerName'] = self.partner_name
            data['partnerEmail'] = self.partner_email
        return data
