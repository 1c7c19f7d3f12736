from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from domain import SlotStatus, TimeSlot, Token, TokenStatus
from errors import NotFoundError
from rules import priority_key
from store import MemoryStore

logger = logging.getLogger(__name__)


class SlotManager:
    """
    Owns every change to a slot's allocated list and waitlist.

    Responsibilities:
    - Keeps current_load equal to the number of allocated tokens.
    - Recomputes slot status after each admission / eviction (CLOSED is sticky).
    - Keeps the waitlist sorted by priority, then arrival.
    - Picks the least-loaded open slot for a doctor.
    """

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def get_slot(self, slot_id: str) -> TimeSlot:
        slot = self.store.get_slot(slot_id)
        if slot is None:
            raise NotFoundError(f"Slot {slot_id} not found")
        return slot

    def _get_token(self, token_id: str) -> Token:
        token = self.store.get_token(token_id)
        if token is None:
            raise NotFoundError(f"Token {token_id} not found")
        return token

    def has_capacity(self, slot_id: str) -> bool:
        slot = self.get_slot(slot_id)
        return slot.current_load < slot.max_capacity

    def add_token(self, slot_id: str, token_id: str) -> None:
        """Admit a token. Capacity is the caller's business (emergencies overflow)."""
        slot = self.get_slot(slot_id)
        with self.store.slot_lock(slot_id):
            slot.allocated_tokens.append(token_id)
            self._refresh(slot)

    def remove_token(self, slot_id: str, token_id: str) -> None:
        slot = self.get_slot(slot_id)
        with self.store.slot_lock(slot_id):
            if token_id in slot.allocated_tokens:
                slot.allocated_tokens.remove(token_id)
            self._refresh(slot)

    def add_to_waitlist(self, slot_id: str, token_id: str) -> None:
        slot = self.get_slot(slot_id)
        with self.store.slot_lock(slot_id):
            slot.waitlist.append(token_id)
            slot.waitlist.sort(key=lambda tid: priority_key(self._get_token(tid)))

    def remove_from_waitlist(self, slot_id: str, token_id: str) -> None:
        slot = self.get_slot(slot_id)
        with self.store.slot_lock(slot_id):
            if token_id in slot.waitlist:
                slot.waitlist.remove(token_id)

    def waitlist_position(self, slot_id: str, token_id: str) -> Optional[int]:
        slot = self.get_slot(slot_id)
        if token_id not in slot.waitlist:
            return None
        return slot.waitlist.index(token_id) + 1

    def promote_from_waitlist(self, slot_id: str) -> Optional[Token]:
        """Seat the waitlist head. Returns None when nobody is waiting."""
        slot = self.get_slot(slot_id)
        with self.store.slot_lock(slot_id):
            if not slot.waitlist:
                return None

            token = self._get_token(slot.waitlist.pop(0))
            self.add_token(slot_id, token.id)
            token.status = TokenStatus.ALLOCATED
            token.slot_id = slot_id
            token.allocated_at = datetime.now()

        logger.info("Token %s promoted from waitlist into slot %s", token.id, slot_id)
        return token

    def utilization(self, slot_id: str) -> float:
        slot = self.get_slot(slot_id)
        return slot.current_load / slot.max_capacity * 100

    def find_best_available_slot(self, doctor_id: str) -> Optional[TimeSlot]:
        """
        Least-loaded open slot with room. Ties go to the earlier slot, since
        ``min`` keeps the first of equal keys.
        """
        candidates = [
            slot
            for slot in self.store.slots_for_doctor(doctor_id)
            if slot.status != SlotStatus.CLOSED
            and slot.current_load < slot.max_capacity
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda s: s.current_load)

    def close_slot(self, slot_id: str) -> None:
        slot = self.get_slot(slot_id)
        with self.store.slot_lock(slot_id):
            slot.status = SlotStatus.CLOSED

    @staticmethod
    def _refresh(slot: TimeSlot) -> None:
        slot.current_load = len(slot.allocated_tokens)
        if slot.status == SlotStatus.CLOSED:
            return
        if slot.current_load < slot.max_capacity:
            slot.status = SlotStatus.AVAILABLE
        elif slot.current_load == slot.max_capacity:
            slot.status = SlotStatus.FULL
        else:
            slot.status = SlotStatus.OVERFLOW
