from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from timeutils import minutes_to_time


class PatientCategory(str, Enum):
    EMERGENCY = "EMERGENCY"
    PAID_PRIORITY = "PAID_PRIORITY"
    FOLLOW_UP = "FOLLOW_UP"
    ONLINE_BOOKING = "ONLINE_BOOKING"
    WALK_IN = "WALK_IN"


class TokenStatus(str, Enum):
    PENDING = "PENDING"
    ALLOCATED = "ALLOCATED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    COMPLETED = "COMPLETED"


class SlotStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    FULL = "FULL"
    OVERFLOW = "OVERFLOW"
    CLOSED = "CLOSED"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


@dataclass
class Doctor:
    id: str
    name: str
    specialization: str
    slot_ids: List[str] = field(default_factory=list)


@dataclass
class TimeSlot:
    id: str
    doctor_id: str
    start_minute: int
    end_minute: int
    max_capacity: int
    current_load: int = 0
    status: SlotStatus = SlotStatus.AVAILABLE
    allocated_tokens: List[str] = field(default_factory=list)
    waitlist: List[str] = field(default_factory=list)

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_minute)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_minute)

    @property
    def label(self) -> str:
        return f"{self.start_time}-{self.end_time}"


@dataclass
class Token:
    id: str
    patient_name: str
    category: PatientCategory
    priority: int
    doctor_id: str
    sequence: int
    created_at: datetime
    status: TokenStatus = TokenStatus.PENDING
    slot_id: Optional[str] = None
    allocated_at: Optional[datetime] = None
    bump_count: int = 0
    severity: Optional[Severity] = None


@dataclass
class AllocationResult:
    success: bool
    token: Token
    message: str
    slot_info: Optional[Dict[str, object]] = None
    bumped_token: Optional[Token] = None
    promoted_token: Optional[Token] = None
    queue_position: Optional[int] = None


@dataclass
class DelayImpact:
    delayed_slot_ids: List[str]
    affected_token_count: int
    overflow_created: bool
    suggestions: List[str]
    merged_capacity: Optional[int] = None


@dataclass
class RedistributionResult:
    redistributed: int
    failed: int
    details: List[str]


@dataclass
class UnavailabilityResult:
    affected_slots: int
    affected_patients: int
    redistribution_plan: List[str]
