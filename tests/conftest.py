"""
Shared pytest fixtures.

``engine`` is a fresh in-memory engine with one doctor and three small
(capacity 2) hourly slots; ``client`` is a TestClient over the FastAPI app,
re-seeded before every test.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from domain import PatientCategory, SlotStatus, Token
from engine import TokenEngine
from rules import priority_key, priority_score

SLOT_0900 = "slot-doc-1-0900"
SLOT_1000 = "slot-doc-1-1000"
SLOT_1100 = "slot-doc-1-1100"


@pytest.fixture
def engine() -> TokenEngine:
    eng = TokenEngine()
    eng.create_doctor("Dr. Test", "General Medicine", doctor_id="doc-1")
    eng.create_slots("doc-1", "09:00", "12:00", duration_minutes=60, max_capacity=2)
    return eng


@pytest.fixture
def make_token(engine):
    """Register a bare PENDING token directly in the store (for slot-level tests)."""

    def _make(name: str, category: PatientCategory = PatientCategory.WALK_IN) -> Token:
        token = Token(
            id=f"tok-{name}",
            patient_name=name,
            category=category,
            priority=priority_score(category),
            doctor_id="doc-1",
            sequence=engine.store.next_sequence(),
            created_at=datetime.now(),
        )
        engine.store.add_token(token)
        return token

    return _make


@pytest.fixture
def client():
    import main
    from seed import initialize_system

    initialize_system(main.engine, main.settings)
    return TestClient(main.app)


def assert_slot_invariants(engine: TokenEngine) -> None:
    for slot in engine.store.all_slots():
        assert slot.current_load == len(slot.allocated_tokens)
        assert not set(slot.allocated_tokens) & set(slot.waitlist)

        keys = [priority_key(engine.get_token(tid)) for tid in slot.waitlist]
        assert keys == sorted(keys)

        if slot.current_load > slot.max_capacity:
            categories = {engine.get_token(tid).category for tid in slot.allocated_tokens}
            assert PatientCategory.EMERGENCY in categories
            if slot.status != SlotStatus.CLOSED:
                assert slot.status == SlotStatus.OVERFLOW
