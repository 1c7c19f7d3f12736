from domain import AllocationResult, PatientCategory, Severity, TokenStatus
from engine import TokenEngine
from logging_config import setup_logging
from seed import initialize_system
from settings import get_settings


def print_result(result: AllocationResult) -> None:
    marker = "OK  " if result.success else "WAIT"
    print(f"[{marker}] {result.token.patient_name}: {result.message}")
    if result.slot_info:
        info = result.slot_info
        print(f"       slot {info['slot_id']} ({info['current_load']}/{info['max_capacity']})")


def print_state(engine: TokenEngine) -> None:
    overview = engine.overview()
    print("\nTokens by status:")
    for status, count in overview["tokens_by_status"].items():
        print(f"  {status:<11} {count}")
    print("Doctors:")
    for doc in overview["doctors"]:
        busy = sum(1 for s in doc["slots_utilization"] if s["status"] in ("FULL", "OVERFLOW"))
        print(f"  {doc['name']} ({doc['specialization']}): {busy}/{doc['total_slots']} slots filled")


def run_simulation() -> None:
    """
    Simulate one OPD day across the three seeded doctors.

    Demonstrates:
    - Slot capacity limits and load-balanced placement.
    - Paid-priority bumping of walk-ins, and the two-bump protection.
    - Emergency overflow.
    - Cancellation / no-show promotion from the waitlist.
    - Doctor delay, slot redistribution and doctor unavailability.
    """
    settings = get_settings()
    setup_logging(settings)
    engine = TokenEngine()
    initialize_system(engine, settings)

    print("\n== Morning rush: online bookings for Dr. Kumar ==")
    for name in ["Rahul Verma", "Sneha Reddy", "Arjun Singh", "Kavya Nair", "Vikram Joshi"]:
        print_result(engine.allocate(name, PatientCategory.ONLINE_BOOKING, "doc-1"))

    first_slot = "slot-doc-1-0900"
    print("\n== Walk-ins fill the 09:00 slot ==")
    walk_ins = [
        engine.allocate(f"Walk-in {i}", PatientCategory.WALK_IN, "doc-1", first_slot)
        for i in range(1, 10)
    ]
    for result in walk_ins:
        print_result(result)

    print("\n== Paid priority arrives at a full slot ==")
    print_result(engine.allocate("Rohan Kapoor", PatientCategory.PAID_PRIORITY, "doc-1", first_slot))

    print("\n== Follow-up joins the waitlist ==")
    print_result(engine.allocate("Meera Iyer", PatientCategory.FOLLOW_UP, "doc-1", first_slot))

    print("\n== Emergency overflows the slot ==")
    print_result(engine.create_emergency("Suresh Menon", "doc-1", Severity.CRITICAL))
    print_result(
        engine.allocate("Anita Desai", PatientCategory.EMERGENCY, "doc-1", first_slot)
    )

    print("\n== Cancellation and no-show ==")
    seated = [r.token for r in walk_ins if r.token.status == TokenStatus.ALLOCATED]
    cancelled = engine.cancel(seated[0].id)
    print(f"Cancelled {cancelled.token.patient_name}", end="")
    if cancelled.promoted_token:
        print(f", promoted {cancelled.promoted_token.patient_name}", end="")
    print()
    no_show = engine.mark_no_show(seated[1].id)
    print(f"No-show {no_show.token.patient_name}", end="")
    if no_show.promoted_token:
        print(f", promoted {no_show.promoted_token.patient_name}", end="")
    print()

    print("\n== Dr. Kumar running 25 minutes late ==")
    impact = engine.handle_doctor_delay("doc-1", 25, first_slot)
    for line in impact.suggestions:
        print(f"  {line}")

    print("\n== 10:00 slot cancelled, patients redistributed ==")
    result = engine.redistribute_slot("slot-doc-1-1000")
    print(f"  {result.redistributed} moved, {result.failed} failed")
    for line in result.details:
        print(f"  {line}")

    print("\n== Dr. Patel unavailable ==")
    for line in engine.handle_doctor_unavailable("doc-3", "Family emergency").redistribution_plan:
        print(f"  {line}")

    print_state(engine)


if __name__ == "__main__":
    run_simulation()
