import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Enum, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from vps_dashboard.db.base import Base


class ServerStatus(str, enum.Enum):
    # Stable
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"
    # Transient: exactly one background job in flight
    SETTING_UP = "setting_up"
    STARTING = "starting"
    STOPPING = "stopping"
    REBOOTING = "rebooting"
    SHUTTING_DOWN = "shutting_down"
    DELETING = "deleting"

    @property
    def is_transient(self) -> bool:
        return self in TRANSIENT_STATUSES


STABLE_STATUSES = frozenset({ServerStatus.RUNNING, ServerStatus.STOPPED, ServerStatus.FAILED})
TRANSIENT_STATUSES = frozenset(set(ServerStatus) - STABLE_STATUSES)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Server(Base):
    __tablename__ = "servers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    host_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ServerStatus] = mapped_column(
        Enum(ServerStatus), nullable=False, default=ServerStatus.SETTING_UP, index=True
    )
    # Written once on setting_up -> running, immutable afterwards
    vm_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    node_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    legacy_id: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    status_changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
