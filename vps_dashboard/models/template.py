import uuid

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from vps_dashboard.db.base import Base


class Template(Base):
    """An OS template VM on the hypervisor that new servers are cloned from."""

    __tablename__ = "templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    os_family: Mapped[str] = mapped_column(String(100), nullable=False)
    vm_id: Mapped[int] = mapped_column(Integer, nullable=False)
    node_name: Mapped[str] = mapped_column(String(255), nullable=False)
