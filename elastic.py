"""
Elastic capacity: reacting to a doctor running late or a slot going away.

Delay handling only reports; it never moves anybody. Moving patients is
``redistribute_patients_from_slot``, which callers invoke separately.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

from domain import (
    DelayImpact,
    Doctor,
    RedistributionResult,
    SlotStatus,
    TimeSlot,
    UnavailabilityResult,
)
from errors import NotFoundError
from slots import SlotManager
from store import MemoryStore

logger = logging.getLogger(__name__)

MINOR_DELAY_MINUTES = 15
MODERATE_DELAY_MINUTES = 30
# Two merged slots lose 10% of their seats to time pressure.
MERGE_EFFICIENCY = 0.9


class DelayHandler:
    def __init__(self, store: MemoryStore, slot_manager: SlotManager) -> None:
        self.store = store
        self.slots = slot_manager

    def _get_doctor(self, doctor_id: str) -> Doctor:
        doctor = self.store.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError(f"Doctor {doctor_id} not found")
        return doctor

    def handle_doctor_delay(
        self, doctor_id: str, delay_minutes: int, from_slot_id: str
    ) -> DelayImpact:
        logger.warning(
            "Doctor %s delayed by %d minutes from slot %s", doctor_id, delay_minutes, from_slot_id
        )
        self._get_doctor(doctor_id)
        self.slots.get_slot(from_slot_id)

        doctor_slots = self.store.slots_for_doctor(doctor_id)
        index = next((i for i, s in enumerate(doctor_slots) if s.id == from_slot_id), None)
        if index is None:
            raise NotFoundError(f"Slot {from_slot_id} not found for doctor {doctor_id}")
        affected = doctor_slots[index:]

        with self.store.lock_slots(*(s.id for s in affected)):
            affected_count = sum(len(s.allocated_tokens) + len(s.waitlist) for s in affected)
            overflow = False
            merged_capacity: Optional[int] = None
            suggestions: List[str] = []

            if delay_minutes <= MINOR_DELAY_MINUTES:
                suggestions.append(f"Minor delay ({delay_minutes}min) - can be absorbed")
                suggestions.append("Doctor to work slightly faster on remaining slots")
            elif delay_minutes <= MODERATE_DELAY_MINUTES:
                second = affected[1] if len(affected) > 1 else None
                merged_capacity, overflow = self._merge(affected[0], second)
                suggestions.append(
                    f"Merged slots {affected[0].id} and {second.id if second else 'N/A'}"
                )
                suggestions.append(f"Combined capacity: {merged_capacity} patients")
                if overflow:
                    suggestions.append("Combined load exceeds merged capacity")
            else:
                suggestions.append(f"Major delay ({delay_minutes}min) - extend working hours")
                suggestions.append("Add extra slot at end of day")
                suggestions.append(f"Affected patients: {affected_count}")

        logger.info("Delay assessed: %d patients affected", affected_count)
        return DelayImpact(
            delayed_slot_ids=[s.id for s in affected],
            affected_token_count=affected_count,
            overflow_created=overflow,
            suggestions=suggestions,
            merged_capacity=merged_capacity,
        )

    @staticmethod
    def _merge(first: TimeSlot, second: Optional[TimeSlot]) -> Tuple[int, bool]:
        if second is None:
            return first.max_capacity, False
        capacity = math.floor((first.max_capacity + second.max_capacity) * MERGE_EFFICIENCY)
        return capacity, first.current_load + second.current_load > capacity

    def redistribute_patients_from_slot(self, slot_id: str) -> RedistributionResult:
        """
        Move everyone off a slot into the doctor's other open slots, first-fit,
        then close it.

        Allocated patients keep a seat in the new slot. Waitlisted patients
        join the new slot's waitlist and stay WAITLISTED even if it has room.
        Patients with nowhere to go stay on the source slot and are reported
        as failures.
        """
        source = self.slots.get_slot(slot_id)
        siblings = self.store.slots_for_doctor(source.doctor_id)
        details: List[str] = []
        redistributed = failed = 0

        with self.store.lock_slots(*(s.id for s in siblings), slot_id):
            targets = [s for s in siblings if s.id != slot_id and s.status != SlotStatus.CLOSED]
            moving = list(source.allocated_tokens) + list(source.waitlist)

            for token_id in moving:
                token = self.store.get_token(token_id)
                if token is None:
                    continue

                target = next((s for s in targets if self.slots.has_capacity(s.id)), None)
                if target is None:
                    details.append(f"{token.patient_name}: No available slot found")
                    failed += 1
                    continue

                was_seated = token_id in source.allocated_tokens
                self.slots.remove_token(slot_id, token_id)
                self.slots.remove_from_waitlist(slot_id, token_id)
                if was_seated:
                    self.slots.add_token(target.id, token_id)
                else:
                    self.slots.add_to_waitlist(target.id, token_id)
                token.slot_id = target.id

                details.append(f"{token.patient_name}: {source.start_time} -> {target.start_time}")
                redistributed += 1

            self.slots.close_slot(slot_id)

        logger.info("Redistribution complete: %d success, %d failed", redistributed, failed)
        return RedistributionResult(redistributed=redistributed, failed=failed, details=details)

    def handle_doctor_unavailable(self, doctor_id: str, reason: str) -> UnavailabilityResult:
        logger.error("Doctor %s unavailable: %s", doctor_id, reason)
        doctor = self._get_doctor(doctor_id)
        doctor_slots = self.store.slots_for_doctor(doctor_id)

        with self.store.lock_slots(*(s.id for s in doctor_slots)):
            affected = 0
            for slot in doctor_slots:
                affected += len(slot.allocated_tokens) + len(slot.waitlist)
                self.slots.close_slot(slot.id)

        plan = [
            f"Doctor {doctor.name} unavailable: {reason}",
            f"Affected slots: {len(doctor_slots)}",
            f"Affected patients: {affected}",
            "",
            "Redistribution options:",
            "1. Reschedule to next available day",
            "2. Assign to another doctor (same specialization)",
            "3. Notify patients for manual rebooking",
        ]
        return UnavailabilityResult(
            affected_slots=len(doctor_slots),
            affected_patients=affected,
            redistribution_plan=plan,
        )
