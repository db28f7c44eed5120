from pydantic import BaseModel, Field
from typing import Optional


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    base_wellness_hours: float = Field(0, ge=0)
    hourly_factor: float = Field(0, ge=0)
    is_low_risk: bool = False
    requires_approval: bool = True
    max_loan_days: int = Field(7, gt=0)
    max_per_student: int = Field(1, gt=0)


class CategoryResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    baseWellnessHours: float
    hourlyFactor: float
    isLowRisk: bool
    requiresApproval: bool
    maxLoanDays: int
    maxPerStudent: int


class ResourceCreate(BaseModel):
    category_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    notes: Optional[str] = None


class ResourceStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(available|maintenance|retired)$")
    notes: Optional[str] = None


class ResourceResponse(BaseModel):
    id: str
    categoryId: str
    name: str
    description: Optional[str] = None
    notes: Optional[str] = None
    status: str
    category: Optional[CategoryResponse] = None
