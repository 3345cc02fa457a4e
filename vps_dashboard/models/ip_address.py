import uuid

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from vps_dashboard.db.base import Base


class IpAddress(Base):
    __tablename__ = "ip_addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    address: Mapped[str] = mapped_column(String(45), nullable=False, unique=True)
    gateway: Mapped[str] = mapped_column(String(45), nullable=False)
    netmask: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    datacenter: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    # Reserved by a server; released when the server row is removed
    server_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("servers.id", ondelete="SET NULL"), nullable=True
    )
