import enum
import uuid

from sqlalchemy import Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from vps_dashboard.db.base import Base


class ServiceStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


class Service(Base):
    """Links a user and a product to the server provisioned for them."""

    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    product_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=True
    )
    template_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("templates.id"), nullable=True
    )
    server_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("servers.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    # Sizing chosen at order time; product defaults unless overridden
    cpu_cores: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ram_gb: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[ServiceStatus] = mapped_column(
        Enum(ServiceStatus), nullable=False, default=ServiceStatus.PENDING
    )
    legacy_id: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
