from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from campsched.db.base import Base


class DaySchedule(Base):
    __tablename__ = "day_schedules"

    day: Mapped[str] = mapped_column(String(10), primary_key=True)
    blocks: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    # {bunk: [entry | null, ...]} indexed by slot
    assignments: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
