from guide_match.models.audit_log import AuditLog
from guide_match.models.base import Base
from guide_match.models.review import Review
from guide_match.models.selection import Selection, SelectionStatus
from guide_match.models.student import Student
from guide_match.models.tourist_request import RequestStatus, TouristRequest

__all__ = [
    "AuditLog",
    "Base",
    "RequestStatus",
    "Review",
    "Selection",
    "SelectionStatus",
    "Student",
    "TouristRequest",
]
