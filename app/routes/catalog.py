from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.config import LoanPolicy, get_loan_policy
from app.database import get_db
from app.models.resource import Resource, ResourceCategory
from app.models.user import User
from app.schemas.resource import (
    CategoryCreate, CategoryResponse, ResourceCreate, ResourceStatusUpdate, ResourceResponse
)
from app.services import catalog
from app.services.auth import get_current_user, require_admin

router = APIRouter(prefix="/api/catalog", tags=["Catalog"])


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(db: Session = Depends(get_db)):
    categories = db.query(ResourceCategory).order_by(ResourceCategory.name.asc()).all()
    return [c.to_dict() for c in categories]


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return catalog.create_category(db, **data.model_dump()).to_dict()


@router.get("/resources", response_model=List[ResourceResponse])
async def list_resources(
    category_id: Optional[int] = None,
    status_filter: Optional[str] = None,
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List resources, optionally filtered by category, status or name."""
    query = db.query(Resource)
    if category_id is not None:
        query = query.filter(Resource.category_id == category_id)
    if status_filter:
        query = query.filter(Resource.status == status_filter)
    if search:
        query = query.filter(Resource.name.ilike(f"%{search}%"))
    return [r.to_dict() for r in query.order_by(Resource.name.asc()).all()]


@router.get("/resources/{resource_id}", response_model=ResourceResponse)
async def get_resource(
    resource_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    resource = db.query(Resource).filter(Resource.resource_id == resource_id).first()
    if not resource:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Resource not found"
        )
    return resource.to_dict()


@router.post("/resources", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_resource(
    data: ResourceCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return catalog.create_resource(db, data.category_id, data.name, data.description, data.notes).to_dict()


@router.patch("/resources/{resource_id}/status", response_model=ResourceResponse)
async def set_resource_status(
    resource_id: int,
    data: ResourceStatusUpdate,
    admin: User = Depends(require_admin),
    policy: LoanPolicy = Depends(get_loan_policy),
    db: Session = Depends(get_db)
):
    """Send a resource to maintenance, retire it, or put it back in circulation."""
    return catalog.set_resource_status(db, resource_id, data.status, policy, data.notes).to_dict()
