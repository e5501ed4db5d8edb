import pytest

from campsched.core.exceptions import ConfigurationError, NoPartitionAssignedError
from campsched.models.user import UserRole
from campsched.services.camp_config import parse_divisions, parse_resource
from campsched.services.field_locks import (
    OTHER_SCHEDULER,
    POST_EDIT_PINNED,
    FieldLockTable,
    load_lock_table,
    register_exhausted,
    save_lock_table,
)
from campsched.services.partition import DivisionPartitioner
from campsched.services.resource_ledger import ResourceLedger


def build_partitioner():
    return DivisionPartitioner(
        parse_divisions(
            {
                "Juniors": {"bunks": ["Bunk 1", "Bunk 2"]},
                "Seniors": {"bunks": ["Bunk 3", "Bunk 4"]},
                "Staff": {"bunks": []},
            }
        )
    )


def test_scheduler_partition_covers_only_granted_divisions():
    partitioner = build_partitioner()
    partition = partitioner.resolve_partition(UserRole.scheduler, ["Juniors"])

    assert partition.divisions == frozenset({"Juniors"})
    assert partition.bunks == frozenset({"Bunk 1", "Bunk 2"})
    assert partition.owns("Bunk 2")
    assert not partition.owns("Bunk 3")
    assert partitioner.foreign_bunks(partition) == frozenset({"Bunk 3", "Bunk 4"})
    assert partitioner.foreign_divisions(partition) == frozenset({"Seniors", "Staff"})


def test_owner_and_admin_receive_every_division():
    partitioner = build_partitioner()
    for role in (UserRole.owner, UserRole.admin, "owner"):
        partition = partitioner.resolve_partition(role)
        assert partition.divisions == frozenset({"Juniors", "Seniors", "Staff"})
        assert partition.bunks == partitioner.all_bunks()


def test_partitions_of_distinct_grants_are_disjoint():
    partitioner = build_partitioner()
    juniors = partitioner.resolve_partition(UserRole.scheduler, ["Juniors"])
    seniors = partitioner.resolve_partition(UserRole.scheduler, ["Seniors"])
    assert not juniors.bunks & seniors.bunks


def test_empty_grant_is_rejected():
    partitioner = build_partitioner()
    with pytest.raises(NoPartitionAssignedError) as excinfo:
        partitioner.resolve_partition(UserRole.scheduler, [])
    assert excinfo.value.status_code == 403
    assert excinfo.value.message == "You have no divisions assigned to schedule."


def test_unknown_division_grants_are_ignored():
    partitioner = build_partitioner()
    with pytest.raises(NoPartitionAssignedError):
        partitioner.resolve_partition(UserRole.scheduler, ["Counselors"])
    partition = partitioner.resolve_partition(UserRole.scheduler, ["Counselors", "Seniors"])
    assert partition.divisions == frozenset({"Seniors"})


def test_division_lookup():
    partitioner = build_partitioner()
    assert partitioner.division_of("Bunk 4") == "Seniors"
    assert partitioner.division_of("Bunk 99") is None
    assert partitioner.bunks_for_divisions(["Juniors", "Nope"]) == frozenset({"Bunk 1", "Bunk 2"})


def test_bunk_in_two_divisions_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        parse_divisions({"Juniors": {"bunks": ["Bunk 1"]}, "Seniors": {"bunks": ["Bunk 1"]}})


def test_lock_table_ignores_own_division_locks():
    table = FieldLockTable()
    table.lock("Pool", [2, 3], locked_by=POST_EDIT_PINNED, division="Juniors", bunk="Bunk 1", source=POST_EDIT_PINNED)

    assert table.is_locked("pool", [3])
    assert not table.is_locked("Pool", [3], divisions={"Juniors", "Seniors"})
    assert table.is_locked("Pool", [1, 2], divisions={"Seniors"})
    assert not table.is_locked("Pool", [4])

    assert table.unlock_bunk("Bunk 1", [3]) == 1
    assert table.lock_for("Pool", 3) is None
    assert table.lock_for("Pool", 2).bunk == "Bunk 1"
    assert len(table) == 1


def test_register_exhausted_locks_full_resources_only():
    ledger = ResourceLedger({"Gaga": parse_resource("Gaga", {"capacity": 2})})
    ledger.try_reserve(0, "Pool", "Bunk 3")
    ledger.try_reserve(1, "Gaga", "Bunk 4")

    table = FieldLockTable()
    assert register_exhausted(ledger, table) == 1

    lock = table.lock_for("Pool", 0)
    assert lock.locked_by == OTHER_SCHEDULER
    assert lock.division == "external"
    assert lock.source == "ledger"
    assert lock.activity == "Used by: Bunk 3"
    assert table.lock_for("Gaga", 1) is None


def test_lock_table_persists_selected_sources(db_session):
    table = FieldLockTable()
    table.lock("Pool", [1], locked_by=POST_EDIT_PINNED, division="Juniors", bunk="Bunk 1", source=POST_EDIT_PINNED)
    table.lock("Field", [1], locked_by=OTHER_SCHEDULER, division="external", source="ledger")

    save_lock_table(db_session, "2026-07-01", table, sources=[POST_EDIT_PINNED])
    db_session.commit()

    loaded = load_lock_table(db_session, "2026-07-01")
    assert len(loaded) == 1
    assert loaded.lock_for("pool", 1).bunk == "Bunk 1"
    assert len(load_lock_table(db_session, "2026-07-02")) == 0

    save_lock_table(db_session, "2026-07-01", FieldLockTable())
    db_session.commit()
    assert len(load_lock_table(db_session, "2026-07-01")) == 0
