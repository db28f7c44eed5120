from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.config import LoanPolicy, get_loan_policy
from app.database import get_db
from app.models.resource import Resource
from app.models.user import User
from app.schemas.loan import LoanRequestResponse
from app.schemas.queue import QueueJoinRequest, QueueEntryResponse
from app.services import loans
from app.services.auth import get_current_user, require_admin
from app.services.queue_ledger import resource_queue

router = APIRouter(prefix="/api/queue", tags=["Resource Queue"])


@router.post("/", response_model=QueueEntryResponse, status_code=status.HTTP_201_CREATED)
async def join_queue(
    data: QueueJoinRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return resource_queue.join(db, data.resource_id, current_user.user_id).to_dict()


@router.delete("/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
async def leave_queue(
    resource_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    resource_queue.leave(db, resource_id, current_user.user_id)


@router.get("/mine", response_model=List[QueueEntryResponse])
async def my_queue_entries(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return [entry.to_dict() for entry in resource_queue.entries_for_user(db, current_user.user_id)]


@router.post("/entries/{entry_id}/enroll", response_model=LoanRequestResponse, status_code=status.HTTP_201_CREATED)
async def enroll_from_notification(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    """Claim a 'spot available' notification; creates the loan."""
    outcome = loans.enroll_from_waitlist(db, entry_id, current_user.user_id, policy)
    return {
        "queued": False,
        "eligibility": outcome.eligibility.value,
        "loan": outcome.loan.to_dict(),
        "queueEntry": outcome.queue_entry.to_dict(),
    }


# Admin

@router.get("/resources/{resource_id}", response_model=List[QueueEntryResponse])
async def list_resource_queue(
    resource_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """The notified holder (if any) followed by the waiting line in order."""
    if db.query(Resource).filter(Resource.resource_id == resource_id).first() is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Resource not found"
        )
    holder = resource_queue.holder(db, resource_id)
    entries = ([holder] if holder else []) + resource_queue.waiting(db, resource_id)
    return [e.to_dict() for e in entries]


@router.post("/resources/{resource_id}/notify", response_model=Optional[QueueEntryResponse])
async def notify_queue_head(
    resource_id: int,
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    """Manually notify the head of a resource queue. Returns null when nobody is waiting."""
    entry = resource_queue.notify_head(db, resource_id, policy)
    return entry.to_dict() if entry else None
