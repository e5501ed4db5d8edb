from datetime import date

from sqlalchemy import select

from campsched.models.activity_history import BunkActivityHistory
from campsched.services.assignments import Assignment, EntryFlag
from campsched.services.rotation_history import (
    RotationBook,
    RotationRecord,
    activities_in_day,
    load_rotation_book,
    record_finalized_day,
)


def finalized_day():
    swim = Assignment("Pool", "Swim")
    return {
        "Bunk 1": [swim, swim.continuation(), Assignment(None, "Lunch", flags=EntryFlag.FIXED), Assignment.free()],
        "Bunk 2": [Assignment("Field X", "Soccer"), None, Assignment("Pool", "swim"), None],
        "Bunk 3": [None, None, None, None],
    }


def test_activities_in_day_counts_resource_holding_runs_once():
    assert activities_in_day(finalized_day()) == {
        "Bunk 1": ["Swim"],
        "Bunk 2": ["Soccer", "swim"],
    }


def test_finalizing_updates_counts_and_last_done(db_session):
    assert record_finalized_day(db_session, date(2026, 7, 1), finalized_day()) == 3
    db_session.commit()

    rows = db_session.execute(
        select(BunkActivityHistory).order_by(BunkActivityHistory.bunk, BunkActivityHistory.activity_key)
    ).scalars().all()
    assert [(row.bunk, row.activity_key, row.lifetime_count) for row in rows] == [
        ("Bunk 1", "swim", 1),
        ("Bunk 2", "soccer", 1),
        ("Bunk 2", "swim", 1),
    ]

    assert record_finalized_day(db_session, date(2026, 7, 1), finalized_day()) == 0
    assert record_finalized_day(db_session, date(2026, 7, 3), finalized_day()) == 3
    db_session.commit()

    book = load_rotation_book(db_session, ["Bunk 1", "Bunk 2"], date(2026, 7, 5))
    assert book.lifetime_count("Bunk 1", "SWIM") == 2
    assert book.days_since("Bunk 1", "Swim") == 2
    assert book.days_since("Bunk 2", "Soccer") == 2
    assert book.days_since("Bunk 2", "Archery") is None


def test_history_after_the_target_day_is_ignored(db_session):
    record_finalized_day(db_session, date(2026, 7, 10), finalized_day())
    db_session.commit()

    book = load_rotation_book(db_session, ["Bunk 1"], date(2026, 7, 2))
    assert book.days_since("Bunk 1", "Swim") is None
    assert book.lifetime_count("Bunk 1", "Swim") == 1
    assert len(load_rotation_book(db_session, [], date(2026, 7, 2))) == 0


def test_rotation_book_lookup_is_case_insensitive():
    book = RotationBook([RotationRecord("Bunk 1", "Arts & Crafts", 4, 6)])
    assert book.record("Bunk 1", " arts & crafts ").lifetime_count == 6
    assert book.lifetime_count("Bunk 2", "Arts & Crafts") == 0
    assert [record.activity for record in book.records_for("Bunk 1")] == ["Arts & Crafts"]
