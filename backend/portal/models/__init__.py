from .profile import Profile, ProfileRole, ProfileStatus, STAFF_ROLES
from .product import InsuranceProduct, RequiredDocument, ProductType, PaymentFrequency
from .policy import Policy, PolicyStatus
from .reimbursement import ReimbursementRequest, ReimbursementDocument, ReimbursementStatus, DocumentStatus
from .audit import ReimbursementDecision, DecisionType
from .magic_link import UsedMagicLink

__all__ = [
    "Profile",
    "ProfileRole",
    "ProfileStatus",
    "STAFF_ROLES",
    "InsuranceProduct",
    "RequiredDocument",
    "ProductType",
    "PaymentFrequency",
    "Policy",
    "PolicyStatus",
    "ReimbursementRequest",
    "ReimbursementDocument",
    "ReimbursementStatus",
    "DocumentStatus",
    "ReimbursementDecision",
    "DecisionType",
    "UsedMagicLink",
]
