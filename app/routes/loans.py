from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.config import LoanPolicy, get_loan_policy
from app.database import get_db
from app.models.loan import Loan
from app.models.user import User
from app.schemas.loan import (
    LoanRequest, LoanResponse, LoanRequestResponse,
    AdminDecision, DeliverRequest, ExtensionRequest, ExtensionDecision, RatingRequest
)
from app.services import loans
from app.services.auth import get_current_user, require_admin

router = APIRouter(prefix="/api/loans", tags=["Loans"])


def _request_outcome(outcome: loans.RequestOutcome) -> dict:
    return {
        "queued": outcome.loan is None,
        "eligibility": outcome.eligibility.value if outcome.eligibility else None,
        "loan": outcome.loan.to_dict() if outcome.loan else None,
        "queueEntry": outcome.queue_entry.to_dict() if outcome.queue_entry else None,
    }


@router.post("/", response_model=LoanRequestResponse, status_code=status.HTTP_201_CREATED)
async def request_loan(
    data: LoanRequest,
    current_user: User = Depends(get_current_user),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    """Request a resource. Unavailable resources place the student in the queue instead."""
    outcome = loans.request_loan(db, current_user.user_id, data.resource_id, policy)
    return _request_outcome(outcome)


@router.get("/mine", response_model=List[LoanResponse])
async def get_my_loans(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user_loans = db.query(Loan).filter(
        Loan.user_id == current_user.user_id
    ).order_by(Loan.requested_at.desc()).all()
    return [loan.to_dict() for loan in user_loans]


@router.get("/", response_model=List[LoanResponse])
async def list_loans(
    status_filter: Optional[str] = None,
    user_id: Optional[int] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """All loans, for the admin desk."""
    query = db.query(Loan)
    if status_filter:
        query = query.filter(Loan.status == status_filter)
    if user_id is not None:
        query = query.filter(Loan.user_id == user_id)
    return [loan.to_dict() for loan in query.order_by(Loan.requested_at.desc()).all()]


@router.get("/{loan_id}", response_model=LoanResponse)
async def get_loan(
    loan_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    loan = db.query(Loan).filter(Loan.loan_id == loan_id).first()
    if not loan or (loan.user_id != current_user.user_id and not current_user.is_admin):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Loan not found"
        )
    return loan.to_dict()


@router.delete("/{loan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_loan(
    loan_id: int,
    current_user: User = Depends(get_current_user),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    """Withdraw a pending request."""
    loans.cancel_loan(db, loan_id, current_user.user_id, policy)


@router.post("/{loan_id}/extension", response_model=LoanResponse)
async def request_extension(
    loan_id: int,
    data: ExtensionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return loans.request_extension(db, loan_id, current_user.user_id, data.reason).to_dict()


@router.post("/{loan_id}/rating", response_model=LoanResponse)
async def rate_loan(
    loan_id: int,
    data: RatingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return loans.rate_loan(db, loan_id, current_user.user_id, data.rating, data.comment).to_dict()


# Admin transitions

@router.post("/{loan_id}/approve", response_model=LoanResponse)
async def approve_loan(
    loan_id: int,
    data: AdminDecision = AdminDecision(),
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    return loans.approve_loan(db, loan_id, admin.user_id, policy, data.notes).to_dict()


@router.post("/{loan_id}/reject", response_model=LoanResponse)
async def reject_loan(
    loan_id: int,
    data: AdminDecision = AdminDecision(),
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    return loans.reject_loan(db, loan_id, admin.user_id, policy, data.notes).to_dict()


@router.post("/{loan_id}/deliver", response_model=LoanResponse)
async def deliver_loan(
    loan_id: int,
    data: DeliverRequest = DeliverRequest(),
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    return loans.deliver_loan(db, loan_id, policy, data.due_date).to_dict()


@router.post("/{loan_id}/return", response_model=LoanResponse)
async def return_loan(
    loan_id: int,
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    return loans.return_loan(db, loan_id, policy, admin_id=admin.user_id).to_dict()


@router.post("/{loan_id}/damaged", response_model=LoanResponse)
async def mark_damaged(
    loan_id: int,
    data: AdminDecision = AdminDecision(),
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    return loans.mark_damaged(db, loan_id, policy, data.notes).to_dict()


@router.post("/{loan_id}/lost", response_model=LoanResponse)
async def mark_lost(
    loan_id: int,
    data: AdminDecision = AdminDecision(),
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    return loans.mark_lost(db, loan_id, policy, data.notes).to_dict()


@router.post("/{loan_id}/extension/decision", response_model=LoanResponse)
async def decide_extension(
    loan_id: int,
    data: ExtensionDecision,
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    return loans.decide_extension(db, loan_id, data.approved, policy, data.new_due_date).to_dict()
