import uuid

from marketplace.extensions import db, now_ms


class PartnerConversation(db.Model):
    __tablename__ = 'partner_conversations'
    __table_args__ = (
        # at most one open conversation per partner
        db.Index(
            'uq_partner_open_conversation',
            'partner_id',
            unique=True,
            postgresql_where=db.text("status = 'open'"),
            sqlite_where=db.text("status = 'open'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    partner_id = db.Column(db.String(64), nullable=False, index=True)
    partner_name = db.Column(db.String(255), nullable=False)
    status = db.Column(
        db.Enum('open', 'closed', name='conversation_status'),
        nullable=False,
        default='open',
    )
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)
    closed_at = db.Column(db.BigInteger)
    closed_by = db.Column(db.String(64))
    closed_by_name = db.Column(db.String(255))
    close_reason = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'partnerId': self.partner_id,
            'partnerName': self.partner_name,
            'status': self.status,
            'createdAt': self.created_at,
            'closedAt': self.closed_at,
            'closedBy': self.closed_by,
            'closedByName': self.closed_by_name,
            'closeReason': self.close_reason,
        }


class PartnerMessage(db.Model):
    __tablename__ = 'partner_messages'
    __table_args__ = (
        db.UniqueConstraint('conversation_id', 'sequence', name='uq_partner_message_sequence'),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id = db.Column(
        db.String(36), db.ForeignKey('partner_conversations.id'), nullable=False, index=True
    )
    partner_id = db.Column(db.String(64), nullable=False, index=True)
    partner_name = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    sent_by_admin = db.Column(db.Boolean, nullable=False, default=False)
    sender_id = db.Column(db.String(64), nullable=False)
    sender_name = db.Column(db.String(255), nullable=False)
    # position inside the conversation, 1-based
    sequence = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)
    read = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            'id': self.id,
            'message': self.message,
            'sentByAdmin': self.sent_by_admin,
            'senderName': self.sender_name,
            'senderId': self.sender_id,
            'createdAt': self.created_at,
            'read': self.read,
        }
