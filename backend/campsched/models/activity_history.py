import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from campsched.db.base import Base


class BunkActivityHistory(Base):
    __tablename__ = "bunk_activity_history"
    __table_args__ = (UniqueConstraint("bunk", "activity_key", name="uq_bunk_activity_history_identity"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    bunk: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    activity_key: Mapped[str] = mapped_column(String(200), nullable=False)
    activity: Mapped[str] = mapped_column(String(200), nullable=False)
    last_done_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    lifetime_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
