from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional

class UserCreate(BaseModel):
    user_fname: str = Field(..., min_length=1, max_length=100)
    user_lname: str = Field(..., min_length=1, max_length=100)
    user_email: EmailStr
    password: str = Field(..., min_length=6)
    student_code: Optional[str] = Field(None, max_length=20)
    major: Optional[str] = Field(None, max_length=255)

class UserLogin(BaseModel):
    user_email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: str
    name: str
    fname: str
    lname: str
    email: str
    studentCode: Optional[str] = None
    major: Optional[str] = None
    role: str
    isBlocked: bool = False
    blockedReason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
