from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from campsched.db.base import Base


class CampSettings(Base):
    __tablename__ = "camp_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    slot_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    day_start: Mapped[str] = mapped_column(String(10), nullable=False, default="9:00 am")
    day_end: Mapped[str] = mapped_column(String(10), nullable=False, default="5:00 pm")
    # {division name: {"bunks": [...], "color": "#..."}}
    divisions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # {resource name: {"capacity": 1, "activities": [...], "preferences": {...}, "maxUsage": 0}}
    resources: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    disabled_resources: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    frequency_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
