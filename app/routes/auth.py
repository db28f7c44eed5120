from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.enums import UserRole
from app.models.user import User
from app.schemas.auth import UserCreate, UserLogin, UserResponse, Token
from app.services.auth import (
    verify_password,
    get_password_hash,
    issue_token_for,
    get_current_user
)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserCreate, db: Session = Depends(get_db)):
    """Register a new student account. Admin accounts are provisioned directly in the database."""
    existing_user = db.query(User).filter(User.user_email == user_data.user_email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    db_user = User(
        user_fname=user_data.user_fname,
        user_lname=user_data.user_lname,
        user_email=user_data.user_email,
        user_password_hash=get_password_hash(user_data.password),
        student_code=user_data.student_code,
        major=user_data.major,
        user_role=UserRole.STUDENT.value,
        is_blocked=False,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)

    return Token(access_token=issue_token_for(db_user), token_type="bearer", user=UserResponse(**db_user.to_dict()))


@router.post("/login", response_model=Token)
async def login(user_data: UserLogin, db: Session = Depends(get_db)):
    """Login and get access token."""
    user = db.query(User).filter(User.user_email == user_data.user_email).first()
    if not user or not verify_password(user_data.password, user.user_password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )
    return Token(access_token=issue_token_for(user), token_type="bearer", user=UserResponse(**user.to_dict()))


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current authenticated user information."""
    return UserResponse(**current_user.to_dict())
