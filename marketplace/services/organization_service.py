"""
Organization Service
Creates agency organizations after payment (or upgrades the owner's
existing one in place), provisions organizations in the identity
provider, and records organization requests.
"""

import logging
import re

from marketplace.errors import Conflict, ValidationError
from marketplace.extensions import db, now_ms
from marketplace.identity import IdentityError
from marketplace.models.organization import Organization, OrganizationRequest, is_valid_slug
from marketplace.plans import (
    DEFAULT_BRANDING,
    DEFAULT_NOTIFICATIONS,
    DEFAULT_PLAN,
    FREE_PLAN_LIMIT,
    PLAN_SETTINGS,
    organization_settings,
    plan_settings,
)

logger = logging.getLogger(__name__)


def _clean_slug(slug):
    slug = (slug or '').strip().lower()
    if not is_valid_slug(slug):
        raise ValidationError('Formato de slug invalido')
    return slug


def default_slug(owner_id):
    fragment = re.sub(r'[^a-z0-9]', '', (owner_id or '')[:8].lower()) or 'agency'
    return f"user-{fragment}"


def get_by_owner(owner_id):
    return (
        Organization.query
        .filter_by(owner_id=owner_id)
        .order_by(Organization.created_at.asc())
        .first()
    )


def slug_taken(slug):
    return Organization.query.filter_by(slug=slug).first() is not None


def _upgrade(org, plan, user_email, is_payment_upgrade, now):
    features = plan_settings(plan)
    metadata = dict(org.extra_metadata or {})
    metadata.update({
        'isPaymentUpgrade': bool(is_payment_upgrade),
        'upgradedAt': now if is_payment_upgrade else metadata.get('upgradedAt'),
        'userEmail': user_email or metadata.get('userEmail'),
        'planFeatures': features,
    })

    org.plan = plan
    org.settings = organization_settings(plan, org.settings)
    org.credits = features['credits']
    org.extra_metadata = metadata
    org.updated_at = now


def _create(owner_id, name, slug, plan, user_email, is_payment_upgrade, now):
    features = plan_settings(plan)
    org = Organization(
        name=name,
        slug=slug,
        description=f"Agencia inmobiliaria profesional - Plan {plan}",
        owner_id=owner_id,
        status='active',
        plan=plan,
        settings=organization_settings(plan),
        credits=features['credits'],
        extra_metadata={
            'isPaymentUpgrade': bool(is_payment_upgrade),
            'upgradedAt': now if is_payment_upgrade else None,
            'userEmail': user_email,
            'planFeatures': features,
        },
        created_at=now,
        updated_at=now,
    )
    db.session.add(org)
    return org


def create_or_upgrade(owner_id, name, slug, plan, user_email=None, is_payment_upgrade=False,
                      identity=None, billing=None, now=None):
    """
    Returns (organization, created). An owner keeps a single organization:
    paying again upgrades it instead of creating a second one.
    `billing` (Stripe customer/subscription ids) is merged into the metadata.
    """
    if not owner_id or not name or not slug or not plan:
        raise ValidationError('Faltan campos requeridos')

    slug = _clean_slug(slug)
    plan = plan if plan in PLAN_SETTINGS else DEFAULT_PLAN
    now = now or now_ms()

    existing = get_by_owner(owner_id)
    if existing:
        _upgrade(existing, plan, user_email, is_payment_upgrade, now)
        org, created = existing, False
    else:
        if slug_taken(slug):
            slug = f"{slug}-{str(now)[-4:]}"
        org, created = _create(owner_id, name, slug, plan, user_email, is_payment_upgrade, now), True

    if billing:
        org.extra_metadata = {**(org.extra_metadata or {}), **billing}
    db.session.commit()
    logger.info(
        f"Organization {org.id} {'created' if created else 'upgraded'} "
        f"for user {owner_id} with plan {plan}"
    )

    if identity is not None:
        sync_owner_metadata(identity, owner_id, org)
    return org, created


def sync_owner_metadata(identity, owner_id, org):
    """Push the organization into the owner's public metadata. Failures are logged, not raised."""
    try:
        identity.update_user_metadata(owner_id, {
            'organizationId': org.id,
            'organizationName': org.name,
            'organizationSlug': org.slug,
            'organizationPlan': org.plan,
            'isAgency': True,
            'role': 'AGENCY',
            'onboardingCompleted': True,
            'isVerified': True,
            'agencyUpgradedAt': (org.extra_metadata or {}).get('upgradedAt') or org.created_at,
        })
        logger.info(f"Updated identity metadata for user {owner_id} with organization {org.id}")
    except IdentityError as e:
        logger.error(f"Error updating identity metadata for user {owner_id}: {e}")


def create_with_identity(auth, identity, name, slug):
    """Create the organization in the identity provider first, then mirror it locally on the free plan."""
    name = (name or '').strip()
    if not name:
        raise ValidationError('El nombre es requerido')
    slug = _clean_slug(slug)
    if slug_taken(slug):
        raise Conflict('El slug ya esta en uso')

    identity_org = identity.create_organization(
        name, slug, auth.user_id,
        public_metadata={'plan': 'free', 'maxProperties': FREE_PLAN_LIMIT},
    )

    now = now_ms()
    org = Organization(
        name=name,
        slug=slug,
        description=f"Organización {name}",
        owner_id=auth.user_id,
        identity_org_id=identity_org.get('id'),
        status='active',
        plan='free',
        settings={
            'allowPublicProperties': True,
            'requireApproval': False,
            'branding': dict(DEFAULT_BRANDING),
            'notifications': dict(DEFAULT_NOTIFICATIONS),
            'maxProperties': FREE_PLAN_LIMIT,
        },
        credits={},
        extra_metadata={},
        created_at=now,
        updated_at=now,
    )
    db.session.add(org)
    db.session.commit()

    logger.info(f"Organization {org.id} linked to identity organization {org.identity_org_id}")
    return org, identity_org


def submit_request(auth, organization_name, description=None, business_type=None):
    organization_name = (organization_name or '').strip()
    if not organization_name:
        raise ValidationError('El nombre de la organizacion es requerido')

    request_doc = OrganizationRequest(
        user_id=auth.user_id,
        organization_name=organization_name,
        description=(description or '').strip(),
        business_type=business_type,
        status='pending',
        requested_at=now_ms(),
    )
    db.session.add(request_doc)
    db.session.commit()

    logger.info(f"Organization request {request_doc.id} filed by user {auth.user_id}")
    return request_doc
