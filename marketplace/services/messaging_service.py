"""
Messaging Service
Partner <-> staff conversations. A partner has at most one open
conversation; the first message after a close opens a new one.
"""

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from marketplace.errors import NotFound, ValidationError
from marketplace.extensions import db, now_ms
from marketplace.models.conversation import PartnerConversation, PartnerMessage

logger = logging.getLogger(__name__)

MESSAGE_HISTORY_LIMIT = 100
DEFAULT_CLOSE_REASON = 'Conversacion finalizada'
SEQUENCE_ATTEMPTS = 3


def get_open_conversation(partner_id):
    return PartnerConversation.query.filter_by(partner_id=partner_id, status='open').first()


def get_or_open_conversation(partner_id, partner_name, now=None):
    conversation = get_open_conversation(partner_id)
    if conversation:
        return conversation

    conversation = PartnerConversation(
        partner_id=partner_id,
        partner_name=partner_name,
        status='open',
        created_at=now or now_ms(),
    )
    db.session.add(conversation)
    try:
        db.session.flush()
    except IntegrityError:
        # a concurrent request opened one first; use theirs
        db.session.rollback()
        conversation = get_open_conversation(partner_id)
        if not conversation:
            raise
        return conversation

    logger.info(f"Created new conversation for partner {partner_id}")
    return conversation


def _next_sequence(conversation_id):
    last = (
        db.session.query(func.max(PartnerMessage.sequence))
        .filter(PartnerMessage.conversation_id == conversation_id)
        .scalar()
    )
    return (last or 0) + 1


def post_message(partner_id, partner_name, sender_id, sender_name, message, sent_by_admin):
    if not isinstance(message, str) or not message.strip():
        raise ValidationError('El mensaje es requerido')

    for attempt in range(1, SEQUENCE_ATTEMPTS + 1):
        now = now_ms()
        conversation = get_or_open_conversation(partner_id, partner_name, now=now)
        partner_message = PartnerMessage(
            conversation_id=conversation.id,
            partner_id=partner_id,
            partner_name=partner_name,
            message=message.strip(),
            sent_by_admin=sent_by_admin,
            sender_id=sender_id,
            sender_name=sender_name,
            sequence=_next_sequence(conversation.id),
            created_at=now,
            read=False,
        )
        db.session.add(partner_message)
        try:
            db.session.commit()
            break
        except IntegrityError:
            # another message took this position; retry with the next one
            db.session.rollback()
            if attempt == SEQUENCE_ATTEMPTS:
                raise
            logger.info(f"Message sequence collision for partner {partner_id}, retrying")

    logger.info(f"Message {partner_message.id} stored in conversation {conversation.id}")
    return partner_message


def close_conversation(auth, partner_id, reason=None):
    now = now_ms()
    result = db.session.execute(
        db.update(PartnerConversation)
        .where(
            PartnerConversation.partner_id == partner_id,
            PartnerConversation.status == 'open',
        )
        .values(
            status='closed',
            closed_at=now,
            closed_by=auth.user_id,
            closed_by_name=auth.display_name('Admin'),
            close_reason=reason or DEFAULT_CLOSE_REASON,
        )
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise NotFound('No hay conversacion activa para cerrar')

    db.session.commit()
    logger.info(f"Conversation closed for partner {partner_id}")


def list_messages(partner_id):
    """
    Messages of the open conversation, oldest first.
    conversationClosed stays true whenever nothing is open; conversationStatus
    tells a closed conversation apart from one that never existed.
    """
    conversation = get_open_conversation(partner_id)
    if not conversation:
        has_history = (
            PartnerConversation.query.filter_by(partner_id=partner_id).first() is not None
        )
        return {
            'messages': [],
            'total': 0,
            'conversationClosed': True,
            'conversationStatus': 'closed' if has_history else 'none',
        }

    messages = (
        PartnerMessage.query
        .filter_by(conversation_id=conversation.id)
        .order_by(PartnerMessage.created_at.asc(), PartnerMessage.sequence.asc())
        .limit(MESSAGE_HISTORY_LIMIT)
        .all()
    )
    return {
        'messages': [m.to_dict() for m in messages],
        'total': len(messages),
        'conversationClosed': False,
        'conversationStatus': 'open',
        'conversationId': conversation.id,
    }
