from .user import User
from .resource import ResourceCategory, Resource
from .loan import Loan
from .queue import QueueEntry
from .event import Event, EventEnrollment, EventWaitlistEntry
from .wellness import WellnessHourAward, HourPenalty
from .sanction import Sanction
from .notification import Notification

__all__ = [
    "User",
    "ResourceCategory",
    "Resource",
    "Loan",
    "QueueEntry",
    "Event",
    "EventEnrollment",
    "EventWaitlistEntry",
    "WellnessHourAward",
    "HourPenalty",
    "Sanction",
    "Notification",
]
