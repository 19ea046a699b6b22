from marketplace.extensions import db, now_ms


class ProcessedCheckoutSession(db.Model):
    """A completed Stripe checkout session whose side effects have been applied."""
    __tablename__ = 'processed_checkout_sessions'

    session_id = db.Column(db.String(255), primary_key=True)
    kind = db.Column(db.Enum('plan', 'service', name='checkout_kind'), nullable=False)
    reference_id = db.Column(db.String(36))
    processed_at = db.Column(db.BigInteger, nullable=False, default=now_ms)
