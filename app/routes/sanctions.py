from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.database import get_db
from app.models.sanction import Sanction
from app.models.user import User
from app.schemas.sanction import SanctionCreate, AppealRequest, AppealDecision, SanctionResponse
from app.services import sanctions
from app.services.auth import get_current_user, require_admin

router = APIRouter(prefix="/api/sanctions", tags=["Sanctions"])


@router.get("/mine", response_model=List[SanctionResponse])
async def my_sanctions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    rows = db.query(Sanction).filter(
        Sanction.user_id == current_user.user_id
    ).order_by(Sanction.start_date.desc()).all()
    return [s.to_dict() for s in rows]


@router.post("/{sanction_id}/appeal", response_model=SanctionResponse)
async def appeal_sanction(
    sanction_id: int,
    data: AppealRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return sanctions.appeal(db, sanction_id, current_user.user_id, data.notes).to_dict()


# Admin

@router.get("/", response_model=List[SanctionResponse])
async def list_sanctions(
    status_filter: Optional[str] = None,
    user_id: Optional[int] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    query = db.query(Sanction)
    if status_filter:
        query = query.filter(Sanction.status == status_filter)
    if user_id is not None:
        query = query.filter(Sanction.user_id == user_id)
    return [s.to_dict() for s in query.order_by(Sanction.start_date.desc()).all()]


@router.post("/", response_model=SanctionResponse, status_code=status.HTTP_201_CREATED)
async def create_sanction(
    data: SanctionCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """High and critical sanctions block the student until resolved."""
    sanction = sanctions.create_sanction(
        db, data.user_id, data.severity, data.reason, issued_by=admin.user_id,
        start_date=data.start_date, end_date=data.end_date,
    )
    return sanction.to_dict()


@router.post("/{sanction_id}/appeal/decision", response_model=SanctionResponse)
async def resolve_appeal(
    sanction_id: int,
    data: AppealDecision,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return sanctions.resolve_appeal(db, sanction_id, data.approved, data.notes).to_dict()


@router.post("/{sanction_id}/void", response_model=SanctionResponse)
async def void_sanction(
    sanction_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return sanctions.void(db, sanction_id).to_dict()
