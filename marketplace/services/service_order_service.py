"""
Service Order Service
Handles service order CRUD: create, lifecycle transitions, per-user queries
and the dashboard stats.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from marketplace.errors import Conflict, NotFound
from marketplace.extensions import db, now_ms
from marketplace.models.service_order import ServiceOrder, validate_order_fields

logger = logging.getLogger(__name__)

SESSION_IN_USE = 'Ya existe una orden para esta sesion de pago'


def build_order(data, status='pending', now=None):
    """Validate `data` and return an unsaved order in `status`."""
    fields = validate_order_fields(data)
    fields['currency'] = fields['currency'] or current_app.config['DEFAULT_CURRENCY']
    return ServiceOrder.build(fields, status=status, now=now)


def create_order(data):
    """
    Direct creation from the services page. The order starts pending,
    optionally already tagged with a Stripe payment intent / session.
    """
    order = build_order(data, status='pending')
    if order.stripe_session_id and get_order_by_session(order.stripe_session_id):
        raise Conflict(SESSION_IN_USE)

    db.session.add(order)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(SESSION_IN_USE)
    logger.info(f"Created service order {order.id} for user {order.user_id}")
    return order


def get_order_by_id(order_id):
    return db.session.get(ServiceOrder, order_id)


def get_order_by_session(stripe_session_id):
    return ServiceOrder.query.filter_by(stripe_session_id=stripe_session_id).first()


def get_orders_by_user(user_id, status=None, limit=10, offset=0):
    query = ServiceOrder.query.filter_by(user_id=user_id)
    if status:
        query = query.filter_by(status=status)
    total = query.count()
    orders = (
        query.order_by(ServiceOrder.created_at.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return orders, total


def update_order_status(order_id, event, **kwargs):
    """
    Apply a lifecycle event (confirm, start_progress, complete, cancel,
    assign, add_note). Illegal transitions raise Conflict.
    """
    order = get_order_by_id(order_id)
    if not order:
        raise NotFound('Orden no encontrada')

    order.apply(event, **kwargs)
    db.session.commit()
    logger.info(f"Service order {order_id} -> {event} (status: {order.status})")
    return order


def _month_bounds(now):
    current = datetime.fromtimestamp(now / 1000, tz=timezone.utc)
    start = current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


def get_stats(user_id, now=None):
    now = now or now_ms()
    month_start, month_end = _month_bounds(now)
    base = ServiceOrder.query.filter_by(user_id=user_id)

    active = base.filter(ServiceOrder.status.in_(('confirmed', 'in_progress'))).count()
    completed = base.filter_by(status='completed').count()
    total_investment = (
        db.session.query(func.coalesce(func.sum(ServiceOrder.amount), 0))
        .filter(ServiceOrder.user_id == user_id, ServiceOrder.status != 'cancelled')
        .scalar()
    )
    this_month = base.filter(
        ServiceOrder.created_at >= month_start,
        ServiceOrder.created_at < month_end,
    ).count()

    return {
        'activeServices': active,
        'completedServices': completed,
        'totalInvestment': float(Decimal(str(total_investment))),
        'thisMonthServices': this_month,
    }
