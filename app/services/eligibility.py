from dataclasses import dataclass
from enum import Enum

from app.config import LoanPolicy


class Eligibility(str, Enum):
    AUTO_APPROVE = "auto_approve"
    REQUIRE_APPROVAL = "require_approval"
    DENY_LIMIT = "deny_limit"


@dataclass(frozen=True)
class CategoryFlags:
    is_low_risk: bool
    requires_approval: bool
    max_per_student: int = None

    @classmethod
    def from_category(cls, category) -> "CategoryFlags":
        return cls(
            is_low_risk=bool(category.is_low_risk),
            requires_approval=bool(category.requires_approval),
            max_per_student=category.max_per_student,
        )


def evaluate(
    active_loan_count: int,
    flags: CategoryFlags,
    policy: LoanPolicy,
    in_good_standing: bool = True,
    category_active_count: int = 0,
) -> Eligibility:
    """Decide how a loan request is handled. No side effects.

    The limit is strict: a requester already at ``system_max_active_loans``
    (or at the category's ``max_per_student``) must return something first.
    A category that requires approval never auto-approves.
    """
    if active_loan_count >= policy.system_max_active_loans:
        return Eligibility.DENY_LIMIT
    if flags.max_per_student is not None and category_active_count >= flags.max_per_student:
        return Eligibility.DENY_LIMIT

    if (
        policy.auto_approve_low_risk
        and flags.is_low_risk
        and not flags.requires_approval
        and in_good_standing
    ):
        return Eligibility.AUTO_APPROVE
    return Eligibility.REQUIRE_APPROVAL
