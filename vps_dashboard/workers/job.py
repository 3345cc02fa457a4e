import enum
import time
import uuid
from dataclasses import dataclass, field

from vps_dashboard.infra.hypervisor.base import CloneRequest, ProvisionedVm, VmRef
from vps_dashboard.models.server import ServerStatus
from vps_dashboard.services.state_machine import ServerAction


@dataclass(frozen=True)
class Job:
    """A unit of background work: one hypervisor operation for one server.

    Plain data only; it owns nothing from the request that produced it.
    """

    server_id: str
    action: ServerAction
    transient_status: ServerStatus
    # None when success removes the row (delete)
    success_status: ServerStatus | None
    vm: VmRef | None = None
    clone: CloneRequest | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    submitted_at: float = field(default_factory=time.monotonic)


class FailureKind(str, enum.Enum):
    TRANSIENT_EXHAUSTED = "transient_exhausted"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class JobOutcome:
    succeeded: bool
    provisioned: ProvisionedVm | None = None
    failure_kind: FailureKind | None = None
    detail: str | None = None
    attempts: int = 1

    @classmethod
    def success(cls, provisioned: ProvisionedVm | None = None, attempts: int = 1) -> "JobOutcome":
        return cls(succeeded=True, provisioned=provisioned, attempts=attempts)

    @classmethod
    def failure(cls, kind: FailureKind, detail: str, attempts: int = 1) -> "JobOutcome":
        return cls(succeeded=False, failure_kind=kind, detail=detail, attempts=attempts)
