from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from allocator import TokenAllocator
from domain import (
    AllocationResult,
    DelayImpact,
    Doctor,
    PatientCategory,
    RedistributionResult,
    Severity,
    TimeSlot,
    Token,
    TokenStatus,
    UnavailabilityResult,
)
from elastic import DelayHandler
from errors import NotFoundError
from slots import SlotManager
from store import MemoryStore
from timeutils import generate_time_windows, minutes_to_time


class TokenEngine:
    """
    In-memory OPD token allocation engine.

    Responsibilities:
    - Provisions doctors and their slots.
    - Routes requests to the allocator (seat / overflow / bump / waitlist).
    - Routes delays and slot failures to the delay handler.
    - Serves read-only views of slots, tokens and overall load.
    """

    def __init__(self, store: Optional[MemoryStore] = None) -> None:
        self.store = store or MemoryStore()
        self.slot_manager = SlotManager(self.store)
        self.allocator = TokenAllocator(self.store, self.slot_manager)
        self.delay_handler = DelayHandler(self.store, self.slot_manager)
        self._next_doctor_id = 1

    def reset(self) -> None:
        self.store.clear()
        self._next_doctor_id = 1

    # --- Provisioning ---

    def create_doctor(
        self, name: str, specialization: str, doctor_id: Optional[str] = None
    ) -> Doctor:
        if doctor_id is None:
            doctor_id = f"doc-{self._next_doctor_id}"
            self._next_doctor_id += 1
        doctor = Doctor(id=doctor_id, name=name, specialization=specialization)
        self.store.add_doctor(doctor)
        return doctor

    def create_slots(
        self,
        doctor_id: str,
        start: str,
        end: str,
        duration_minutes: int = 60,
        max_capacity: int = 10,
    ) -> List[TimeSlot]:
        self.get_doctor(doctor_id)
        if max_capacity < 1:
            raise ValueError("Slot capacity must be at least 1")

        slots = []
        for start_minute, end_minute in generate_time_windows(start, end, duration_minutes):
            slot = TimeSlot(
                id=f"slot-{doctor_id}-{minutes_to_time(start_minute).replace(':', '')}",
                doctor_id=doctor_id,
                start_minute=start_minute,
                end_minute=end_minute,
                max_capacity=max_capacity,
            )
            self.store.add_slot(slot)
            slots.append(slot)
        return slots

    # --- Operations ---

    def allocate(
        self,
        patient_name: str,
        category: PatientCategory,
        doctor_id: str,
        preferred_slot_id: Optional[str] = None,
    ) -> AllocationResult:
        return self.allocator.allocate(patient_name, category, doctor_id, preferred_slot_id)

    def create_emergency(
        self, patient_name: str, doctor_id: str, severity: Severity
    ) -> AllocationResult:
        return self.allocator.allocate(
            patient_name, PatientCategory.EMERGENCY, doctor_id, severity=severity
        )

    def cancel(self, token_id: str) -> AllocationResult:
        return self.allocator.cancel(token_id)

    def mark_no_show(self, token_id: str) -> AllocationResult:
        return self.allocator.mark_no_show(token_id)

    def complete(self, token_id: str) -> Token:
        return self.allocator.complete(token_id)

    def handle_doctor_delay(
        self, doctor_id: str, delay_minutes: int, from_slot_id: str
    ) -> DelayImpact:
        return self.delay_handler.handle_doctor_delay(doctor_id, delay_minutes, from_slot_id)

    def redistribute_slot(self, slot_id: str) -> RedistributionResult:
        return self.delay_handler.redistribute_patients_from_slot(slot_id)

    def handle_doctor_unavailable(self, doctor_id: str, reason: str) -> UnavailabilityResult:
        return self.delay_handler.handle_doctor_unavailable(doctor_id, reason)

    # --- Reads ---

    def list_doctors(self) -> List[Doctor]:
        return self.store.all_doctors()

    def get_doctor(self, doctor_id: str) -> Doctor:
        doctor = self.store.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError(f"Doctor {doctor_id} not found")
        return doctor

    def list_slots(self, doctor_id: Optional[str] = None) -> List[TimeSlot]:
        if doctor_id is not None:
            self.get_doctor(doctor_id)
            return self.store.slots_for_doctor(doctor_id)
        return self.store.all_slots()

    def get_slot(self, slot_id: str) -> TimeSlot:
        return self.slot_manager.get_slot(slot_id)

    def get_token(self, token_id: str) -> Token:
        token = self.store.get_token(token_id)
        if token is None:
            raise NotFoundError(f"Token {token_id} not found")
        return token

    def list_tokens(
        self, status: Optional[TokenStatus] = None, doctor_id: Optional[str] = None
    ) -> List[Token]:
        tokens = self.store.all_tokens()
        if status is not None:
            tokens = [t for t in tokens if t.status == status]
        if doctor_id is not None:
            tokens = [t for t in tokens if t.doctor_id == doctor_id]
        return tokens

    def slot_view(self, slot_id: str) -> Dict[str, Any]:
        """Slot fields plus the derived load figures the dashboards show."""
        slot = self.get_slot(slot_id)
        doctor = self.store.get_doctor(slot.doctor_id)
        view = asdict(slot)
        view.update(
            start_time=slot.start_time,
            end_time=slot.end_time,
            doctor_name=doctor.name if doctor else "Unknown",
            utilization=f"{slot.current_load}/{slot.max_capacity}",
            utilization_percentage=self.slot_manager.utilization(slot_id),
            waitlist_count=len(slot.waitlist),
            spots_left=max(slot.max_capacity - slot.current_load, 0),
        )
        return view

    def slot_detail(self, slot_id: str) -> Dict[str, Any]:
        slot = self.get_slot(slot_id)
        return {
            "slot": self.slot_view(slot_id),
            "allocated_tokens": [self.get_token(tid) for tid in slot.allocated_tokens],
            "waitlist_tokens": [self.get_token(tid) for tid in slot.waitlist],
        }

    def overview(self) -> Dict[str, Any]:
        tokens = self.store.all_tokens()
        doctors = []
        for doctor in self.store.all_doctors():
            doctors.append(
                {
                    "id": doctor.id,
                    "name": doctor.name,
                    "specialization": doctor.specialization,
                    "total_slots": len(doctor.slot_ids),
                    "slots_utilization": [
                        {
                            "slot_id": slot.id,
                            "time": slot.label,
                            "load": f"{slot.current_load}/{slot.max_capacity}",
                            "utilization_percentage": self.slot_manager.utilization(slot.id),
                            "status": slot.status.value,
                            "waitlist": len(slot.waitlist),
                        }
                        for slot in self.store.slots_for_doctor(doctor.id)
                    ],
                }
            )

        return {
            **self.store.stats(),
            "doctors": doctors,
            "tokens_by_status": {
                status.value: sum(1 for t in tokens if t.status == status)
                for status in TokenStatus
            },
        }

    def token_stats(self) -> Dict[str, Any]:
        tokens = self.store.all_tokens()
        return {
            "total": len(tokens),
            "by_status": {
                status.value: sum(1 for t in tokens if t.status == status)
                for status in TokenStatus
            },
            "by_category": {
                category.value: sum(1 for t in tokens if t.category == category)
                for category in PatientCategory
            },
            "bumped_patients": sum(1 for t in tokens if t.bump_count > 0),
            "total_bumps": sum(t.bump_count for t in tokens),
        }
