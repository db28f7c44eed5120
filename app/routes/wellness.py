from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.schemas.wellness import HoursSummaryResponse, StudentRecordResponse
from app.services.auth import get_current_user, require_admin
from app.services.scoring import student_record
from app.services.wellness import hours_summary

router = APIRouter(prefix="/api/wellness", tags=["Wellness"])


@router.get("/hours/me", response_model=HoursSummaryResponse)
async def my_hours(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return hours_summary(db, current_user.user_id)


@router.get("/hours/{user_id}", response_model=HoursSummaryResponse)
async def user_hours(
    user_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return hours_summary(db, user_id)


@router.get("/score/me", response_model=StudentRecordResponse)
async def my_score(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Trust score and level derived from loan and attendance history."""
    return student_record(db, current_user.user_id).to_dict()
