import random

from campsched.services.assignments import Assignment
from campsched.services.camp_config import parse_resource
from campsched.services.resource_ledger import ResourceLedger, seed_from_assignments


def build_ledger(**resources):
    return ResourceLedger({name: parse_resource(name, raw) for name, raw in resources.items()})


def test_capacity_defaults_and_sharable_rule():
    ledger = build_ledger(Pool={"capacity": 3}, Gaga={"sharable": True}, Archery={})
    assert ledger.capacity_of("pool") == 3
    assert ledger.capacity_of("Gaga") == 2
    assert ledger.capacity_of("Archery") == 1
    assert ledger.capacity_of("Unknown Field") == 1


def test_try_reserve_refuses_past_capacity():
    ledger = build_ledger(Field={"capacity": 2})
    assert ledger.try_reserve(5, "Field", "Bunk 1") is True
    assert ledger.try_reserve(5, "field", "Bunk 2") is True
    assert ledger.try_reserve(5, "Field", "Bunk 3") is False
    assert ledger.usage(5, "Field") == 2
    assert ledger.booked_by(5, "Field") == ["Bunk 1", "Bunk 2"]
    assert ledger.blocked_at(5) == ["Field"]
    assert ledger.remaining_capacity(4, "Field") == 2


def test_usage_never_exceeds_capacity_under_random_interleaving():
    ledger = build_ledger(A={"capacity": 2}, B={}, C={"capacity": 3})
    rng = random.Random(7)
    for step in range(500):
        ledger.try_reserve(rng.randrange(6), rng.choice(["A", "B", "C"]), f"Bunk {step}")
    for _, record in ledger.records():
        assert record.usage_count <= record.max_capacity
        assert len(record.booked_by) == record.usage_count


def test_try_reserve_all_is_all_or_nothing():
    ledger = build_ledger(Court={})
    assert ledger.try_reserve(2, "Court", "Bunk 9")
    assert ledger.try_reserve_all([1, 2, 3], "Court", "Bunk 1") is False
    assert ledger.usage(1, "Court") == 0
    assert ledger.usage(3, "Court") == 0
    assert ledger.try_reserve_all([3, 4, 4], "Court", "Bunk 1") is True
    assert ledger.usage(4, "Court") == 1


def test_seed_reserves_whole_runs_and_skips_partition():
    ledger = build_ledger(Pool={}, Field={})
    assignments = {
        "Bunk 1": [Assignment("Pool", "Swim"), Assignment("Pool", "Swim").continuation(), Assignment.free()],
        "Bunk 2": [None, Assignment("Field", "Soccer"), None],
        "Bunk 3": [Assignment("Field", "Soccer"), None, None],
    }
    rejected = seed_from_assignments(ledger, assignments, skip_bunks={"Bunk 3"})
    assert rejected == 0
    assert ledger.booked_by(0, "Pool") == ["Bunk 1"]
    assert ledger.booked_by(1, "Pool") == ["Bunk 1"]
    assert ledger.booked_by(1, "Field") == ["Bunk 2"]
    assert ledger.usage(0, "Field") == 0
    assert ledger.usage(2, "Pool") == 0


def test_seed_counts_preexisting_overbooking_without_forcing_it():
    ledger = build_ledger(Pool={})
    assignments = {
        "Bunk 1": [Assignment("Pool", "Swim")],
        "Bunk 2": [Assignment("Pool", "Swim")],
    }
    assert seed_from_assignments(ledger, assignments) == 1
    assert ledger.usage(0, "Pool") == 1


def test_snapshot_drops_excluded_bookings_only():
    ledger = build_ledger(Field={"capacity": 2})
    ledger.try_reserve(0, "Field", "Bunk 1")
    ledger.try_reserve(1, "Field", "Bunk 1")
    ledger.try_reserve(1, "Field", "Bunk 2")

    by_owner = ledger.snapshot(exclude_owners=["Bunk 1"])
    assert by_owner.usage(0, "Field") == 0
    assert by_owner.booked_by(1, "Field") == ["Bunk 2"]

    by_booking = ledger.snapshot(exclude_bookings=[(1, "Bunk 1")])
    assert by_booking.booked_by(0, "Field") == ["Bunk 1"]
    assert by_booking.booked_by(1, "Field") == ["Bunk 2"]
    assert ledger.usage(1, "Field") == 2


def test_summary_and_reset():
    ledger = build_ledger(Field={"capacity": 2})
    ledger.try_reserve(3, "Field", "Bunk 1")
    assert ledger.summary() == {3: {"Field": "1/2"}}
    ledger.reset()
    assert ledger.summary() == {}
    assert ledger.is_available(3, "Field")
