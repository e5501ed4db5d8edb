import pytest

from campsched.core.exceptions import ForeignConflictError
from campsched.models.user import UserRole
from campsched.schemas.conflict import ResolutionChoice
from campsched.services.assignments import Assignment
from campsched.services.conflict_service import ConflictService, decide_resolution, group_conflicts_by_bunk
from campsched.services.field_locks import FieldLockTable, register_exhausted
from campsched.services.partition import DivisionPartitioner
from campsched.services.resource_ledger import ResourceLedger, seed_from_assignments


def build_service(config, assignments, *, granted=("Juniors",), lock_foreign=True):
    partitioner = DivisionPartitioner(config.divisions)
    partition = partitioner.resolve_partition(UserRole.scheduler, granted)
    ledger = ResourceLedger(config.resources)
    lock_table = FieldLockTable()
    seed_from_assignments(ledger, assignments, skip_bunks=partition.bunks)
    if lock_foreign:
        register_exhausted(ledger, lock_table)
    seed_from_assignments(ledger, assignments, skip_bunks=partitioner.foreign_bunks(partition))
    return ConflictService(
        ledger=ledger,
        partition=partition,
        partitioner=partitioner,
        lock_table=lock_table,
        assignments=assignments,
    )


@pytest.fixture()
def camp(camp_config):
    return camp_config(
        {"Juniors": ["Bunk 1", "Bunk 3"], "Seniors": ["Bunk 2"]},
        {"Field X": {"activities": ["Soccer"]}, "Gaga Pit": {"capacity": 3}},
    )


def test_free_resource_has_no_conflict(camp):
    service = build_service(camp, {})
    report = service.check_placement("Field X", [3])

    assert not report.has_conflict
    assert report.can_share is False
    assert report.max_capacity == 1
    assert decide_resolution(report, None).mode == "direct"


def test_foreign_booking_needs_a_decision(camp):
    assignments = {"Bunk 2": [None, None, None, Assignment("Field X", "Soccer"), None, None]}
    service = build_service(camp, assignments)
    report = service.check_placement("Field X", [3], exclude_bunk="Bunk 1")

    assert report.has_conflict
    assert report.non_editable == ["Bunk 2"]
    assert report.editable == []
    assert report.foreign_locked_slots == [3]
    assert report.conflicts[0].activity == "Soccer"
    assert report.conflicts[0].division == "Seniors"
    assert report.requires_decision

    with pytest.raises(ForeignConflictError) as excinfo:
        decide_resolution(report, None)
    assert excinfo.value.status_code == 409
    assert excinfo.value.details["report"]["non_editable"] == ["Bunk 2"]


def test_notify_and_bypass_plans(camp):
    assignments = {"Bunk 2": [None, None, None, Assignment("Field X", "Soccer"), None, None]}
    report = build_service(camp, assignments).check_placement("Field X", [3])

    notify = decide_resolution(report, ResolutionChoice.notify)
    assert notify.mode == "notify"
    assert notify.reassign == {}
    assert notify.notify == {"Bunk 2": [3]}

    bypass = decide_resolution(report, ResolutionChoice.bypass)
    assert bypass.mode == "bypass"
    assert bypass.reassign == {"Bunk 2": [3]}
    assert bypass.notify == {}


def test_own_division_conflict_resolves_automatically(camp):
    assignments = {"Bunk 3": [None, None, Assignment("Field X", "Soccer"), None, None, None]}
    report = build_service(camp, assignments).check_placement("Field X", [2], exclude_bunk="Bunk 1")

    assert report.editable == ["Bunk 3"]
    assert report.non_editable == []
    assert report.auto_resolvable

    decision = decide_resolution(report, None)
    assert decision.mode == "auto"
    assert decision.reassign == {"Bunk 3": [2]}


def test_sharable_resource_with_room_is_not_a_conflict(camp):
    assignments = {"Bunk 2": [Assignment("Gaga Pit", "Gaga"), None, None, None, None, None]}
    report = build_service(camp, assignments).check_placement("Gaga Pit", [0])

    assert not report.has_conflict
    assert report.can_share
    assert report.current_usage == 1
    assert report.max_capacity == 3


def test_foreign_lock_alone_counts_as_conflict(camp):
    service = build_service(camp, {})
    service.lock_table.lock("Field X", [4], locked_by="other_scheduler", division="Seniors")
    report = service.check_placement("Field X", [4, 5])

    assert report.has_conflict
    assert report.foreign_locked_slots == [4]
    assert report.conflicts == []
    assert report.requires_decision

    service.lock_table.lock("Field X", [5], locked_by="post_edit_pinned", division="Juniors")
    assert service.check_placement("Field X", [5]).has_conflict is False


def test_group_conflicts_by_bunk_merges_slots(camp):
    run = [Assignment("Field X", "Soccer"), Assignment("Field X", "Soccer").continuation()]
    assignments = {"Bunk 2": run + [None] * 4, "Bunk 3": [None] * 4 + run}
    report = build_service(camp, assignments, lock_foreign=False).check_placement("Field X", [0, 1, 4, 5])

    assert group_conflicts_by_bunk(report, include_foreign=True) == {"Bunk 2": [0, 1], "Bunk 3": [4, 5]}
    assert group_conflicts_by_bunk(report, include_foreign=False) == {"Bunk 3": [4, 5]}
    assert report.conflicts[1].activity == "Soccer"
