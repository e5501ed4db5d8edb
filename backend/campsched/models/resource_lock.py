import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from campsched.db.base import Base


class ResourceLock(Base):
    __tablename__ = "resource_locks"
    __table_args__ = (
        UniqueConstraint("day", "resource_key", "slot_index", name="uq_resource_locks_identity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    day: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    resource_key: Mapped[str] = mapped_column(String(200), nullable=False)
    resource_name: Mapped[str] = mapped_column(String(200), nullable=False)
    slot_index: Mapped[int] = mapped_column(Integer, nullable=False)
    locked_by: Mapped[str] = mapped_column(String(100), nullable=False)
    division: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bunk: Mapped[str | None] = mapped_column(String(100), nullable=True)
    activity: Mapped[str | None] = mapped_column(String(200), nullable=True)
    source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
