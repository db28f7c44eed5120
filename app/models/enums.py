from enum import Enum


class UserRole(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


class ResourceStatus(str, Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class LoanStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"
    DAMAGED = "damaged"
    EXPIRED = "expired"


class DecisionSource(str, Enum):
    AUTOMATIC = "automatic"
    HUMAN = "human"


class QueueStatus(str, Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    ENROLLED = "enrolled"
    EXPIRED = "expired"


class WellnessSource(str, Enum):
    LOAN = "loan"
    EVENT = "event"


class SanctionSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SanctionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    APPEALED = "appealed"
    VOIDED = "voided"


# Allowed loan transitions; anything absent is rejected.
# overdue -> active only happens through an approved extension.
LOAN_TRANSITIONS = {
    LoanStatus.PENDING: {LoanStatus.APPROVED, LoanStatus.REJECTED},
    LoanStatus.APPROVED: {LoanStatus.ACTIVE, LoanStatus.EXPIRED},
    LoanStatus.ACTIVE: {LoanStatus.RETURNED, LoanStatus.OVERDUE, LoanStatus.LOST, LoanStatus.DAMAGED},
    LoanStatus.OVERDUE: {LoanStatus.RETURNED, LoanStatus.LOST, LoanStatus.DAMAGED, LoanStatus.ACTIVE},
    LoanStatus.REJECTED: set(),
    LoanStatus.RETURNED: set(),
    LoanStatus.LOST: set(),
    LoanStatus.DAMAGED: set(),
    LoanStatus.EXPIRED: set(),
}

QUEUE_TRANSITIONS = {
    QueueStatus.WAITING: {QueueStatus.NOTIFIED},
    QueueStatus.NOTIFIED: {QueueStatus.ENROLLED, QueueStatus.EXPIRED},
    QueueStatus.ENROLLED: set(),
    QueueStatus.EXPIRED: set(),
}

TERMINAL_LOAN_STATUSES = frozenset(s for s, targets in LOAN_TRANSITIONS.items() if not targets)

# Loans counted against the requester's active-loan limit
OPEN_LOAN_STATUSES = (LoanStatus.PENDING, LoanStatus.APPROVED, LoanStatus.ACTIVE, LoanStatus.OVERDUE)

# Loans that hold the physical resource (mutual exclusion)
HOLDING_LOAN_STATUSES = (LoanStatus.APPROVED, LoanStatus.ACTIVE, LoanStatus.OVERDUE)

# Queue entries that still occupy a slot for their (target, requester) pair
LIVE_QUEUE_STATUSES = (QueueStatus.WAITING, QueueStatus.NOTIFIED)

BLOCKING_SEVERITIES = (SanctionSeverity.HIGH, SanctionSeverity.CRITICAL)


def values(members) -> list:
    return [m.value for m in members]


def check_constraint_sql(column: str, enum_cls) -> str:
    allowed = ", ".join(f"'{m.value}'" for m in enum_cls)
    return f"{column} IN ({allowed})"
