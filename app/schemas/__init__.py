from .auth import UserCreate, UserLogin, UserResponse, Token
from .resource import CategoryCreate, CategoryResponse, ResourceCreate, ResourceStatusUpdate, ResourceResponse
from .queue import QueueJoinRequest, QueueEntryResponse
from .loan import (
    LoanRequest, LoanResponse, LoanRequestResponse,
    AdminDecision, DeliverRequest, ExtensionRequest, ExtensionDecision, RatingRequest
)
from .event import EventCreate, EventUpdate, EventResponse, EnrollmentResponse, EnrollOutcome, AttendanceUpdate
from .sanction import SanctionCreate, AppealRequest, AppealDecision, SanctionResponse
from .wellness import (
    HourAwardResponse, HourPenaltyResponse, HoursSummaryResponse,
    StudentRecordResponse, NotificationResponse
)

__all__ = [
    "UserCreate", "UserLogin", "UserResponse", "Token",
    "CategoryCreate", "CategoryResponse", "ResourceCreate", "ResourceStatusUpdate", "ResourceResponse",
    "QueueJoinRequest", "QueueEntryResponse",
    "LoanRequest", "LoanResponse", "LoanRequestResponse",
    "AdminDecision", "DeliverRequest", "ExtensionRequest", "ExtensionDecision", "RatingRequest",
    "EventCreate", "EventUpdate", "EventResponse", "EnrollmentResponse", "EnrollOutcome", "AttendanceUpdate",
    "SanctionCreate", "AppealRequest", "AppealDecision", "SanctionResponse",
    "HourAwardResponse", "HourPenaltyResponse", "HoursSummaryResponse",
    "StudentRecordResponse", "NotificationResponse",
]
