from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, Tuple
from datetime import datetime
from enum import Enum


def now_millis() -> int:
    return int(datetime.now().timestamp() * 1000)


class TaskStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            # Normalize to lowercase before lookup
            value = value.lower()
            for member in cls:
                if member.value == value:
                    return member
        return None

    @classmethod
    def parse(cls, value: Any) -> Optional["TaskStatus"]:
        try:
            return cls(value)
        except (TypeError, ValueError):
            return None


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            value = value.lower()
            for member in cls:
                if member.value == value:
                    return member
        return None

    @classmethod
    def parse(cls, value: Any) -> Optional["Priority"]:
        try:
            return cls(value)
        except (TypeError, ValueError):
            return None


class QuadrantScheme(str, Enum):
    """Naming scheme for quadrant codes exposed to clients.

    CODES is the letter vocabulary (UI, NUI, UNI, NUNI); MATRIX is the
    decision-matrix vocabulary (do-first, schedule, delegate, eliminate).
    """

    CODES = "codes"
    MATRIX = "matrix"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            value = value.lower()
            for member in cls:
                if member.value == value:
                    return member
        return None


# (important, urgent) -> codes per scheme, in rank order
QUADRANTS: Tuple[Tuple[Tuple[bool, bool], Dict[QuadrantScheme, str]], ...] = (
    ((True, True), {QuadrantScheme.CODES: "UI", QuadrantScheme.MATRIX: "do-first"}),
    ((True, False), {QuadrantScheme.CODES: "NUI", QuadrantScheme.MATRIX: "schedule"}),
    ((False, True), {QuadrantScheme.CODES: "UNI", QuadrantScheme.MATRIX: "delegate"}),
    ((False, False), {QuadrantScheme.CODES: "NUNI", QuadrantScheme.MATRIX: "eliminate"}),
)


class Task(BaseModel):
    """A task document as stored under a user's namespace."""

    id: str = ""
    title: str
    description: str = ""
    dueDate: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    important: bool = False
    urgent: bool = False
    done: bool = False
    status: TaskStatus = TaskStatus.ACTIVE
    createdAt: int = Field(default_factory=now_millis)
    updatedAt: int = Field(default_factory=now_millis)
    deletedAt: Optional[int] = None
    archivedAt: Optional[int] = None

    def to_document(self) -> Dict[str, Any]:
        """Serialize for storage; the id lives in the key, absent fields are dropped."""
        return self.model_dump(mode="json", exclude={"id"}, exclude_none=True)
