from marketplace.models.checkout import ProcessedCheckoutSession
from marketplace.models.conversation import PartnerConversation, PartnerMessage
from marketplace.models.credit import Credit, CreditRequest
from marketplace.models.organization import Organization, OrganizationRequest
from marketplace.models.service_order import ServiceOrder, ServiceType
from marketplace.models.verification import PartnerVerification

__all__ = [
    'Credit',
    'CreditRequest',
    'Organization',
    'OrganizationRequest',
    'PartnerConversation',
    'PartnerMessage',
    'PartnerVerification',
    'ProcessedCheckoutSession',
    'ServiceOrder',
    'ServiceType',
]
