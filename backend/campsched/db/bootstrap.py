from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from campsched.db.base import Base
from campsched.db.session import engine as default_engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "name", "role", "divisions"},
    "camp_settings": {"id", "slot_minutes", "day_start", "day_end", "divisions", "resources"},
    "day_schedules": {"day", "blocks", "assignments", "version"},
    "bunk_activity_history": {"bunk", "activity_key", "last_done_on", "lifetime_count"},
    "resource_locks": {"day", "resource_key", "slot_index", "locked_by"},
}


def _ensure_day_schedule_version_column(engine: Engine) -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "day_schedules" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("day_schedules")}
        if "version" in column_names:
            return
        connection.execute(
            text("ALTER TABLE day_schedules ADD COLUMN version INTEGER NOT NULL DEFAULT 1")
        )


def _assert_required_columns(engine: Engine) -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema(engine: Engine | None = None) -> None:
    target = engine or default_engine
    try:
        import campsched.models  # noqa: F401

        Base.metadata.create_all(bind=target)
        _ensure_day_schedule_version_column(target)
        _assert_required_columns(target)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema bootstrap failed")
        raise RuntimeError("Runtime schema bootstrap failed") from exc
