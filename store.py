from __future__ import annotations

import itertools
import threading
from contextlib import ExitStack, contextmanager
from typing import Dict, Iterator, List, Optional

from domain import Doctor, TimeSlot, Token


class MemoryStore:
    """
    Id-keyed tables for doctors, slots and tokens.

    Only the slot manager and the token allocator mutate what lives here.
    Each slot gets its own re-entrant lock; anything touching several slots
    must go through ``lock_slots`` so locks are always taken in ascending id
    order.
    """

    def __init__(self) -> None:
        self.doctors: Dict[str, Doctor] = {}
        self.slots: Dict[str, TimeSlot] = {}
        self.tokens: Dict[str, Token] = {}
        self._table_lock = threading.RLock()
        self._slot_locks: Dict[str, threading.RLock] = {}
        self._unplaced_lock = threading.RLock()
        self._sequence = itertools.count(1)

    # --- Doctors ---

    def add_doctor(self, doctor: Doctor) -> None:
        with self._table_lock:
            self.doctors[doctor.id] = doctor

    def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        return self.doctors.get(doctor_id)

    def all_doctors(self) -> List[Doctor]:
        return list(self.doctors.values())

    # --- Slots ---

    def add_slot(self, slot: TimeSlot) -> None:
        with self._table_lock:
            self.slots[slot.id] = slot
            self._slot_locks.setdefault(slot.id, threading.RLock())
            doctor = self.doctors.get(slot.doctor_id)
            if doctor is not None and slot.id not in doctor.slot_ids:
                doctor.slot_ids.append(slot.id)

    def get_slot(self, slot_id: str) -> Optional[TimeSlot]:
        return self.slots.get(slot_id)

    def all_slots(self) -> List[TimeSlot]:
        return list(self.slots.values())

    def slots_for_doctor(self, doctor_id: str) -> List[TimeSlot]:
        """The doctor's slots in provisioning order."""
        doctor = self.doctors.get(doctor_id)
        if doctor is None:
            return []
        return [self.slots[sid] for sid in doctor.slot_ids if sid in self.slots]

    # --- Tokens ---

    def add_token(self, token: Token) -> None:
        with self._table_lock:
            self.tokens[token.id] = token

    def get_token(self, token_id: str) -> Optional[Token]:
        return self.tokens.get(token_id)

    def all_tokens(self) -> List[Token]:
        return list(self.tokens.values())

    def delete_token(self, token_id: str) -> None:
        """Purge a token record. Normal flows never call this."""
        with self._table_lock:
            self.tokens.pop(token_id, None)

    def next_sequence(self) -> int:
        with self._table_lock:
            return next(self._sequence)

    # --- Locking ---

    def slot_lock(self, slot_id: str) -> threading.RLock:
        with self._table_lock:
            return self._slot_locks.setdefault(slot_id, threading.RLock())

    @contextmanager
    def token_slot_lock(self, token: Token) -> Iterator[Optional[str]]:
        """
        Hold the lock of the slot ``token`` currently references and yield
        that slot id.

        A token only changes slot while its current slot is locked, so the
        reference is re-read after acquiring and the acquire is retried if the
        token moved in the meantime. Tokens with no slot share one lock.
        """
        while True:
            slot_id = token.slot_id
            lock = self._unplaced_lock if slot_id is None else self.slot_lock(slot_id)
            with lock:
                if token.slot_id == slot_id:
                    yield slot_id
                    return

    @contextmanager
    def lock_slots(self, *slot_ids: str) -> Iterator[None]:
        """Hold the locks of every given slot, acquired in ascending id order."""
        with ExitStack() as stack:
            for slot_id in sorted(set(slot_ids)):
                stack.enter_context(self.slot_lock(slot_id))
            yield

    # --- Housekeeping ---

    def clear(self) -> None:
        with self._table_lock:
            self.doctors.clear()
            self.slots.clear()
            self.tokens.clear()
            self._slot_locks.clear()
            self._sequence = itertools.count(1)

    def stats(self) -> Dict[str, int]:
        return {
            "total_doctors": len(self.doctors),
            "total_slots": len(self.slots),
            "total_tokens": len(self.tokens),
        }
