from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Dict, Optional

from domain import (
    AllocationResult,
    PatientCategory,
    Severity,
    SlotStatus,
    TimeSlot,
    Token,
    TokenStatus,
)
from errors import InvalidStateError, NotFoundError, UnprocessableError
from rules import can_be_bumped, can_bump, priority_score
from slots import SlotManager
from store import MemoryStore

logger = logging.getLogger(__name__)


class TokenAllocator:
    """
    Decides, for each request, whether the patient is seated, overflowed,
    seated by bumping someone, or queued.

    Also owns the cancel / no-show / complete transitions and the single
    waitlist promotion each freed seat triggers.
    """

    def __init__(self, store: MemoryStore, slot_manager: SlotManager) -> None:
        self.store = store
        self.slots = slot_manager

    def _get_token(self, token_id: str) -> Token:
        token = self.store.get_token(token_id)
        if token is None:
            raise NotFoundError(f"Token {token_id} not found")
        return token

    @staticmethod
    def _slot_info(slot: TimeSlot) -> Dict[str, object]:
        return {
            "slot_id": slot.id,
            "current_load": slot.current_load,
            "max_capacity": slot.max_capacity,
        }

    def allocate(
        self,
        patient_name: str,
        category: PatientCategory,
        doctor_id: str,
        preferred_slot_id: Optional[str] = None,
        severity: Optional[Severity] = None,
    ) -> AllocationResult:
        doctor = self.store.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundError(f"Doctor {doctor_id} not found")
        if not doctor.slot_ids:
            raise UnprocessableError(f"Doctor {doctor_id} has no slots")

        preferred: Optional[TimeSlot] = None
        if preferred_slot_id is not None:
            preferred = self.slots.get_slot(preferred_slot_id)
            if preferred.doctor_id != doctor_id:
                raise NotFoundError(
                    f"Slot {preferred_slot_id} not found for doctor {doctor_id}"
                )
            if preferred.status == SlotStatus.CLOSED:
                raise InvalidStateError(f"Slot {preferred_slot_id} is closed")

        token = Token(
            id=str(uuid.uuid4()),
            patient_name=patient_name,
            category=category,
            priority=priority_score(category),
            doctor_id=doctor_id,
            sequence=self.store.next_sequence(),
            created_at=datetime.now(),
            severity=severity,
        )
        self.store.add_token(token)
        logger.info("Token created: %s for %s (%s)", token.id, patient_name, category.value)

        target = preferred or self._select_slot(token)
        while target is not None:
            with self.store.slot_lock(target.id):
                if target.status != SlotStatus.CLOSED:
                    return self._allocate_to_slot(token, target)
            # Closed between selection and locking; closed slots never reopen.
            logger.info("Slot %s closed before admission, re-selecting", target.id)
            target = self._select_slot(token)

        token.status = TokenStatus.WAITLISTED
        logger.warning("No open slot for doctor %s, token %s left unplaced", doctor_id, token.id)
        return AllocationResult(
            success=False,
            token=token,
            message="No available slots. Added to general waitlist.",
        )

    def _select_slot(self, token: Token) -> Optional[TimeSlot]:
        target = self.slots.find_best_available_slot(token.doctor_id)
        if target is None and token.category == PatientCategory.EMERGENCY:
            target = self._least_loaded_open_slot(token.doctor_id)
        return target

    def _least_loaded_open_slot(self, doctor_id: str) -> Optional[TimeSlot]:
        open_slots = [
            s for s in self.store.slots_for_doctor(doctor_id) if s.status != SlotStatus.CLOSED
        ]
        if not open_slots:
            return None
        return min(open_slots, key=lambda s: s.current_load)

    def _allocate_to_slot(self, token: Token, slot: TimeSlot) -> AllocationResult:
        if self.slots.has_capacity(slot.id):
            self._seat(token, slot)
            logger.info("Token %s allocated to slot %s", token.id, slot.id)
            return AllocationResult(
                success=True,
                token=token,
                message="Token allocated successfully",
                slot_info=self._slot_info(slot),
            )

        if token.category == PatientCategory.EMERGENCY:
            self._seat(token, slot)
            logger.warning(
                "Emergency token %s created overflow in slot %s (%d/%d)",
                token.id, slot.id, slot.current_load, slot.max_capacity,
            )
            return AllocationResult(
                success=True,
                token=token,
                message=(
                    "Emergency patient allocated "
                    f"(slot in overflow: {slot.current_load}/{slot.max_capacity})"
                ),
                slot_info=self._slot_info(slot),
            )

        if token.category == PatientCategory.PAID_PRIORITY:
            result = self._try_bump(token, slot)
            if result is not None:
                return result

        return self._waitlist(token, slot)

    def _seat(self, token: Token, slot: TimeSlot) -> None:
        self.slots.add_token(slot.id, token.id)
        token.status = TokenStatus.ALLOCATED
        token.slot_id = slot.id
        token.allocated_at = datetime.now()

    def _try_bump(self, token: Token, slot: TimeSlot) -> Optional[AllocationResult]:
        candidates = [
            t
            for t in (self._get_token(tid) for tid in slot.allocated_tokens)
            if t.status == TokenStatus.ALLOCATED
            and can_bump(token.category, t.category)
            and can_be_bumped(t.bump_count)
        ]
        if not candidates:
            logger.info("Token %s found nobody to bump in slot %s", token.id, slot.id)
            return None

        # Most recently admitted is displaced first.
        victim = candidates[-1]
        self.slots.remove_token(slot.id, victim.id)
        victim.bump_count += 1
        victim.allocated_at = None
        victim.status = TokenStatus.WAITLISTED
        # Still waiting on this slot, so the reference now points at the waitlist.
        victim.slot_id = slot.id
        self.slots.add_to_waitlist(slot.id, victim.id)

        self._seat(token, slot)
        logger.info(
            "Token %s bumped token %s (bump count: %d)", token.id, victim.id, victim.bump_count
        )
        return AllocationResult(
            success=True,
            token=token,
            message=f"Allocated by bumping patient {victim.patient_name}",
            slot_info=self._slot_info(slot),
            bumped_token=victim,
        )

    def _waitlist(self, token: Token, slot: TimeSlot) -> AllocationResult:
        token.status = TokenStatus.WAITLISTED
        token.slot_id = slot.id
        self.slots.add_to_waitlist(slot.id, token.id)
        position = self.slots.waitlist_position(slot.id, token.id)

        logger.info("Token %s added to waitlist for slot %s at position %s", token.id, slot.id, position)
        return AllocationResult(
            success=False,
            token=token,
            message=f"Added to waitlist (position: {position})",
            slot_info=self._slot_info(slot),
            queue_position=position,
        )

    def cancel(self, token_id: str) -> AllocationResult:
        token = self._get_token(token_id)
        promoted: Optional[Token] = None

        with self.store.token_slot_lock(token) as slot_id:
            if token.status == TokenStatus.CANCELLED:
                return AllocationResult(success=False, token=token, message="Token already cancelled")
            if token.status in (TokenStatus.COMPLETED, TokenStatus.NO_SHOW):
                raise InvalidStateError(
                    f"Token {token_id} is {token.status.value} and cannot be cancelled"
                )

            previous = token.status
            token.status = TokenStatus.CANCELLED
            if slot_id is not None:
                if previous == TokenStatus.ALLOCATED:
                    self.slots.remove_token(slot_id, token_id)
                    promoted = self.slots.promote_from_waitlist(slot_id)
                elif previous == TokenStatus.WAITLISTED:
                    self.slots.remove_from_waitlist(slot_id, token_id)

        logger.info("Token %s cancelled", token_id)
        return AllocationResult(
            success=True,
            token=token,
            message="Token cancelled successfully",
            promoted_token=promoted,
        )

    def mark_no_show(self, token_id: str) -> AllocationResult:
        """
        Mark a patient absent and hand their seat to the waitlist head.

        There is no "already no-show" guard. A repeat call still evicts and
        may promote, but only into a seat that is actually free, so the slot
        never goes over capacity through this path.
        """
        token = self._get_token(token_id)
        promoted: Optional[Token] = None

        with self.store.token_slot_lock(token) as slot_id:
            token.status = TokenStatus.NO_SHOW
            if slot_id is not None:
                was_seated = token_id in self.slots.get_slot(slot_id).allocated_tokens
                self.slots.remove_token(slot_id, token_id)
                self.slots.remove_from_waitlist(slot_id, token_id)
                if was_seated or self.slots.has_capacity(slot_id):
                    promoted = self.slots.promote_from_waitlist(slot_id)

        logger.warning("Token %s marked as NO_SHOW", token_id)
        return AllocationResult(
            success=True,
            token=token,
            message="Marked as no-show, slot freed",
            promoted_token=promoted,
        )

    def complete(self, token_id: str) -> Token:
        """The consultation used its seat for the day; nothing is freed."""
        token = self._get_token(token_id)
        with self.store.token_slot_lock(token):
            token.status = TokenStatus.COMPLETED
        logger.info("Token %s completed", token_id)
        return token
