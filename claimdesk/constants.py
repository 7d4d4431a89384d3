"""Constants and enums for the claims engine"""

from enum import Enum


class ItemStatus(str, Enum):
    """Found item lifecycle"""
    AVAILABLE = "AVAILABLE"
    CLAIMED = "CLAIMED"
    RETURNED = "RETURNED"
    DISPOSED = "DISPOSED"


class ItemCategory(str, Enum):
    """Item categories; matching only compares within one category"""
    ELECTRONICS = "ELECTRONICS"
    DOCUMENTS = "DOCUMENTS"
    CLOTHING = "CLOTHING"
    ACCESSORIES = "ACCESSORIES"
    BAGS = "BAGS"
    KEYS = "KEYS"
    JEWELRY = "JEWELRY"
    BOOKS = "BOOKS"
    SPORTS_EQUIPMENT = "SPORTS_EQUIPMENT"
    OTHER = "OTHER"


class ItemColor(str, Enum):
    """Structured item colors"""
    BLACK = "BLACK"
    WHITE = "WHITE"
    GRAY = "GRAY"
    SILVER = "SILVER"
    GOLD = "GOLD"
    YELLOW = "YELLOW"
    BEIGE = "BEIGE"
    BROWN = "BROWN"
    RED = "RED"
    ORANGE = "ORANGE"
    PINK = "PINK"
    MAROON = "MAROON"
    BLUE = "BLUE"
    NAVY = "NAVY"
    TEAL = "TEAL"
    CYAN = "CYAN"
    GREEN = "GREEN"
    PURPLE = "PURPLE"
    MULTICOLOR = "MULTICOLOR"
    OTHER = "OTHER"


class ItemSize(str, Enum):
    """Structured item sizes"""
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"
    EXTRA_LARGE = "EXTRA_LARGE"


class MatchStatus(str, Enum):
    """Match review status"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    AUTO_CONFIRMED = "AUTO_CONFIRMED"


class ClaimStatus(str, Enum):
    """Claim lifecycle states"""
    FILED = "FILED"
    IDENTITY_PROOF_REQUESTED = "IDENTITY_PROOF_REQUESTED"
    VERIFIED = "VERIFIED"
    AWAITING_TRANSFER = "AWAITING_TRANSFER"
    AWAITING_RECOVERY = "AWAITING_RECOVERY"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED = "ARRIVED"
    PICKUP_BOOKED = "PICKUP_BOOKED"
    RETURNED = "RETURNED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class ProofType(str, Enum):
    """Accepted proof document types"""
    GOVERNMENT_ID = "GOVERNMENT_ID"
    INVOICE = "INVOICE"
    PHOTO = "PHOTO"
    OWNERSHIP_PROOF = "OWNERSHIP_PROOF"
    OTHER = "OTHER"


class ChallengeKind(str, Enum):
    """Origin of a challenge question"""
    SECRET_MARK = "SECRET_MARK"
    COLOR = "COLOR"
    CUSTOM = "CUSTOM"


class ActivityAction(str, Enum):
    """Audit trail actions"""
    ITEM_REGISTERED = "ITEM_REGISTERED"
    LOST_REPORT_SUBMITTED = "LOST_REPORT_SUBMITTED"
    MATCH_GENERATED = "MATCH_GENERATED"
    MATCH_STATUS_UPDATED = "MATCH_STATUS_UPDATED"
    CLAIM_FILED = "CLAIM_FILED"
    PROOF_UPLOADED = "PROOF_UPLOADED"
    CLAIM_VERIFIED = "CLAIM_VERIFIED"
    CLAIM_REJECTED = "CLAIM_REJECTED"
    CLAIM_DELETED = "CLAIM_DELETED"
    CHALLENGE_ISSUED = "CHALLENGE_ISSUED"
    CHALLENGE_ANSWERED = "CHALLENGE_ANSWERED"


class NotificationEvent(str, Enum):
    """Notification event types handed to the dispatcher"""
    MATCH_FOUND = "MATCH_FOUND"
    CLAIM_STATUS_UPDATE = "CLAIM_STATUS_UPDATE"
    PROOF_REQUESTED = "PROOF_REQUESTED"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    NEW_CLAIM_FOR_REVIEW = "NEW_CLAIM_FOR_REVIEW"


class UserRole(str, Enum):
    """Caller roles"""
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    CLAIMANT = "CLAIMANT"


class MatchJobType(str, Enum):
    """Background match job triggers"""
    ITEM_CREATED = "ITEM_CREATED"
    REPORT_CREATED = "REPORT_CREATED"


TERMINAL_CLAIM_STATES = frozenset({
    ClaimStatus.RETURNED,
    ClaimStatus.REJECTED,
    ClaimStatus.CANCELLED,
})

# Claims that hold the item: verified and everything after it, short of return
VERIFIED_OR_LATER_STATES = frozenset({
    ClaimStatus.VERIFIED,
    ClaimStatus.AWAITING_TRANSFER,
    ClaimStatus.AWAITING_RECOVERY,
    ClaimStatus.IN_TRANSIT,
    ClaimStatus.ARRIVED,
    ClaimStatus.PICKUP_BOOKED,
})

PROOF_UPLOAD_STATES = frozenset({ClaimStatus.FILED, ClaimStatus.IDENTITY_PROOF_REQUESTED})

STAFF_ROLES = frozenset({UserRole.STAFF, UserRole.ADMIN})


# Default configuration values
DEFAULT_AUTO_MATCH_THRESHOLD = 85
DEFAULT_REJECT_THRESHOLD = 30
DEFAULT_MATCH_WEIGHTS = {
    "category": 0.20,
    "keyword": 0.20,
    "date": 0.15,
    "location": 0.15,
    "feature": 0.20,
    "color": 0.10,
}
DEFAULT_WEIGHT_SUM_TOLERANCE = 0.001

DEFAULT_HIGH_RISK_THRESHOLD = 70
DEFAULT_MONTHLY_CLAIM_LIMIT = 5
DEFAULT_RAPID_CLAIMS_24H = 5
DEFAULT_CHALLENGE_PASS_THRESHOLD = 75

GENERATE_MATCHES_CONCURRENCY = 10
RESCAN_CONCURRENCY = 5

SYSTEM_ACTOR = "system"
