import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class VmRef:
    node_name: str
    vm_id: int


@dataclass(frozen=True)
class CloneRequest:
    template: VmRef
    host_name: str
    ip_address: str
    gateway: str
    netmask: int
    cpu_cores: int
    ram_gb: int
    # Id the new VM is created under; allocated once per job so retries resume it
    vm_id: int | None = None


@dataclass(frozen=True)
class ProvisionedVm:
    vm_id: int
    node_name: str
    ip_address: str


class RemoteState(str, enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class HypervisorError(Exception):
    """Base error for hypervisor calls. Never rendered as an HTTP response."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")


class RemoteTransientError(HypervisorError):
    """Retry-eligible: timeout, rate limiting, control plane temporarily unreachable."""


class RemotePermanentError(HypervisorError):
    """The call can never succeed as issued."""


class RemoteNotFoundError(RemotePermanentError):
    """The referenced VM does not exist on the hypervisor."""


class VmIdConflictError(RemotePermanentError):
    """The requested VM id is held by a VM this request did not create."""


class HypervisorClientBase(ABC):
    """Capability set the orchestration core needs from a virtualization control plane.

    Every call blocks until the remote operation has finished, so a returned call
    means the VM is in the requested state.
    """

    @abstractmethod
    async def next_vm_id(self) -> int:
        """Next unused VM id. Nothing is reserved until a VM is created under it."""

    @abstractmethod
    async def clone(self, request: CloneRequest) -> ProvisionedVm:
        """Clone, configure and boot ``request.template``.

        With ``request.vm_id`` set the call is resumable: a VM already carrying
        that id and ``request.host_name`` is reused and only the remaining steps
        run. A VM with that id but another name raises VmIdConflictError.
        """

    @abstractmethod
    async def discard_clone(self, request: CloneRequest) -> bool:
        """Destroy what a failed ``clone`` left under ``request.vm_id``.

        Only a VM named ``request.host_name`` is removed. Returns False when
        there was nothing to remove.
        """

    @abstractmethod
    async def power_on(self, vm: VmRef) -> None: ...

    @abstractmethod
    async def power_off(self, vm: VmRef) -> None: ...

    @abstractmethod
    async def reboot(self, vm: VmRef) -> None: ...

    @abstractmethod
    async def graceful_shutdown(self, vm: VmRef) -> None: ...

    @abstractmethod
    async def destroy(self, vm: VmRef) -> None: ...

    @abstractmethod
    async def query_status(self, vm: VmRef) -> RemoteState: ...

    async def aclose(self) -> None:
        """Release network resources. No-op unless the client holds any."""
