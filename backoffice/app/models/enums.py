"""
Enumerations shared by the back-office models.

Values match the strings stored by the marketplace database.
"""

import enum
from sqlalchemy import Enum


class UserRole(str, enum.Enum):
    """Profile roles."""
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


class ProviderStatus(str, enum.Enum):
    """Provider (store) lifecycle status."""
    PENDING_APPROVAL = "pending_approval"
    INCOMPLETE = "incomplete"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    OPEN = "open"
    CLOSED = "closed"
    TEMPORARILY_PAUSED = "temporarily_paused"
    ON_VACATION = "on_vacation"


# Statuses that count as an operating store in analytics
ACTIVE_PROVIDER_STATUSES = (
    ProviderStatus.APPROVED,
    ProviderStatus.OPEN,
    ProviderStatus.CLOSED,
    ProviderStatus.TEMPORARILY_PAUSED,
    ProviderStatus.ON_VACATION,
)


class DeliveryResponsibility(str, enum.Enum):
    """Who runs delivery for a provider's orders."""
    MERCHANT = "merchant"
    PLATFORM = "platform"


class OrderStatus(str, enum.Enum):
    """Order status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class OrderSettlementStatus(str, enum.Enum):
    """Whether an order can still be picked up by a settlement run."""
    ELIGIBLE = "eligible"
    SETTLED = "settled"


COD_PAYMENT_METHODS = ("cash", "cod")


class SettlementStatus(str, enum.Enum):
    """Settlement status enumeration."""
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    DISPUTED = "disputed"
    WAIVED = "waived"


class SettlementDirection(str, enum.Enum):
    """Which side owes money once COD commission and online payout are netted."""
    PLATFORM_PAYS_PROVIDER = "platform_pays_provider"
    PROVIDER_PAYS_PLATFORM = "provider_pays_platform"
    BALANCED = "balanced"


class SettlementFrequency(str, enum.Enum):
    """How often the providers of a settlement group are settled."""
    DAILY = "daily"
    THREE_DAYS = "3_days"
    WEEKLY = "weekly"


class BannerType(str, enum.Enum):
    """Audience the banner is shown to."""
    CUSTOMER = "customer"
    PARTNER = "partner"


class BannerApprovalStatus(str, enum.Enum):
    """Review state of a provider-submitted banner."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class BannerStatus(str, enum.Enum):
    """Derived (never stored) display status of a banner."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SCHEDULED = "scheduled"
    EXPIRED = "expired"


class CustomOrderInputType(str, enum.Enum):
    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"
    MIXED = "mixed"


class CustomRequestStatus(str, enum.Enum):
    """Custom order request status."""
    PENDING = "pending"
    PRICED = "priced"
    CUSTOMER_APPROVED = "customer_approved"
    CUSTOMER_REJECTED = "customer_rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ItemAvailabilityStatus(str, enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    SUBSTITUTED = "substituted"
    PARTIAL = "partial"


def db_enum(enum_cls):
    """SQLAlchemy Enum type that persists the member values, not the names."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=40,
    )
