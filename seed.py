"""Startup provisioning: the three doctors an OPD day runs with."""

import logging
from typing import List, NamedTuple

from engine import TokenEngine
from settings import Settings

logger = logging.getLogger(__name__)


class DoctorSchedule(NamedTuple):
    doctor_id: str
    name: str
    specialization: str
    start: str
    end: str
    capacity: int


DEFAULT_SCHEDULES: List[DoctorSchedule] = [
    DoctorSchedule("doc-1", "Dr. Rajesh Kumar", "Cardiology", "09:00", "17:00", 10),
    DoctorSchedule("doc-2", "Dr. Priya Sharma", "Pediatrics", "10:00", "18:00", 12),
    DoctorSchedule("doc-3", "Dr. Amit Patel", "Orthopedics", "08:00", "16:00", 8),
]


def initialize_system(engine: TokenEngine, settings: Settings) -> None:
    engine.reset()
    for schedule in DEFAULT_SCHEDULES:
        engine.create_doctor(schedule.name, schedule.specialization, doctor_id=schedule.doctor_id)
        slots = engine.create_slots(
            schedule.doctor_id,
            schedule.start,
            schedule.end,
            duration_minutes=settings.slot_duration_minutes,
            max_capacity=schedule.capacity,
        )
        logger.info(
            "Created %d slots for %s (%s-%s)", len(slots), schedule.name, schedule.start, schedule.end
        )
    logger.info("System initialization complete: %s", engine.store.stats())
