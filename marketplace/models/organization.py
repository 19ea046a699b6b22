"""
Organization (agency account) and the organization requests users file
before they have one.
Status: active | inactive | suspended
Plan:   free | basic | premium | enterprise
"""

import re
import uuid

from marketplace.extensions import JSONType, db, now_ms

ORGANIZATION_PLANS = ('free', 'basic', 'premium', 'enterprise')
ORGANIZATION_STATUSES = ('active', 'inactive', 'suspended')

SLUG_RE = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def is_valid_slug(slug):
    return bool(slug) and 3 <= len(slug) <= 50 and bool(SLUG_RE.match(slug))


class Organization(db.Model):
    __tablename__ = 'organizations'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=False, default='')
    owner_id = db.Column(db.String(64), nullable=False, index=True)
    identity_org_id = db.Column(db.String(64))
    status = db.Column(
        db.Enum(*ORGANIZATION_STATUSES, name='organization_status'),
        nullable=False,
        default='active',
    )
    plan = db.Column(
        db.Enum(*ORGANIZATION_PLANS, name='organization_plan'),
        nullable=False,
        default='free',
    )
    settings = db.Column(JSONType, nullable=False, default=dict)
    credits = db.Column(JSONType, nullable=False, default=dict)
    # "metadata" is reserved on declarative classes
    extra_metadata = db.Column('metadata', JSONType, nullable=False, default=dict)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)
    updated_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    def summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'plan': self.plan,
            'status': self.status,
            'createdAt': self.created_at,
            'upgradedAt': (self.extra_metadata or {}).get('upgradedAt'),
        }

    def to_dict(self):
        data = self.summary()
        data.update({
            'description': self.description,
            'ownerId': self.owner_id,
            'identityOrgId': self.identity_org_id,
            'settings': self.settings,
            'credits': self.credits,
            'metadata': self.extra_metadata,
            'updatedAt': self.updated_at,
        })
        return data


class OrganizationRequest(db.Model):
    __tablename__ = 'organization_requests'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(64), nullable=False, index=True)
    organization_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    business_type = db.Column(db.String(64))
    status = db.Column(
        db.Enum('pending', 'approved', 'rejected', name='organization_request_status'),
        nullable=False,
        default='pending',
    )
    requested_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'organizationName': self.organization_name,
            'description': self.description,
            'businessType': self.business_type,
            'status': self.status,
            'requestedAt': self.requested_at,
        }
