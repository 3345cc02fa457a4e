"""
MockHypervisorClient — an in-memory hypervisor implementing HypervisorClientBase.

Used in development (``use_mock_hypervisor``) and by the test-suite. Failures can
be scripted per operation so every reconciliation path can be exercised without
a real Proxmox cluster.
"""

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass

from vps_dashboard.infra.hypervisor.base import (
    CloneRequest,
    HypervisorClientBase,
    HypervisorError,
    ProvisionedVm,
    RemoteNotFoundError,
    RemotePermanentError,
    RemoteState,
    VmIdConflictError,
    VmRef,
)


@dataclass
class _MockVm:
    ref: VmRef
    host_name: str
    ip_address: str
    state: RemoteState


class MockHypervisorClient(HypervisorClientBase):
    def __init__(self, latency_s: float = 0.0, first_vm_id: int = 100) -> None:
        self.latency_s = latency_s
        self.calls: list[tuple[str, object]] = []
        self._vms: dict[int, _MockVm] = {}
        self._next_vm_id = first_vm_id
        self._scripted: dict[str, deque[HypervisorError | float]] = defaultdict(deque)

    # --- Scripting helpers ---

    def fail_next(self, operation: str, error: HypervisorError, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``.

        ``"boot"`` fails a clone after its VM was created, leaving that VM behind.
        """
        for _ in range(times):
            self._scripted[operation].append(error)

    def hang_next(self, operation: str, seconds: float, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` sleep before answering."""
        for _ in range(times):
            self._scripted[operation].append(seconds)

    def add_vm(self, vm_id: int, node_name: str, state: RemoteState = RemoteState.RUNNING) -> VmRef:
        ref = VmRef(node_name=node_name, vm_id=vm_id)
        self._vms[vm_id] = _MockVm(ref=ref, host_name=f"vm-{vm_id}", ip_address="", state=state)
        self._next_vm_id = max(self._next_vm_id, vm_id + 1)
        return ref

    def state_of(self, vm_id: int) -> RemoteState | None:
        vm = self._vms.get(vm_id)
        return vm.state if vm else None

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    async def _enter(self, operation: str, argument: object) -> None:
        self.calls.append((operation, argument))
        if self.latency_s:
            await asyncio.sleep(self.latency_s)
        await self._scripted_step(operation)

    async def _scripted_step(self, operation: str) -> None:
        scripted = self._scripted[operation]
        if scripted:
            step = scripted.popleft()
            if isinstance(step, HypervisorError):
                raise step
            await asyncio.sleep(step)

    def _require(self, operation: str, vm: VmRef) -> _MockVm:
        found = self._vms.get(vm.vm_id)
        if found is None or found.ref.node_name != vm.node_name:
            raise RemoteNotFoundError(operation, f"VM {vm.vm_id} not found on node {vm.node_name}")
        return found

    # --- Capability ---

    async def next_vm_id(self) -> int:
        await self._enter("next_vm_id", None)
        # Handed out once, so concurrent creates never share an id
        vm_id = self._next_vm_id
        self._next_vm_id += 1
        return vm_id

    async def clone(self, request: CloneRequest) -> ProvisionedVm:
        await self._enter("clone", request)
        vm_id = request.vm_id if request.vm_id is not None else await self.next_vm_id()
        ref = VmRef(node_name=request.template.node_name, vm_id=vm_id)

        existing = self._vms.get(vm_id)
        if existing is not None and existing.host_name != request.host_name:
            raise VmIdConflictError("clone", f"VM {vm_id} already exists as {existing.host_name}")
        if existing is None:
            self._vms[vm_id] = _MockVm(
                ref=ref,
                host_name=request.host_name,
                ip_address=request.ip_address,
                state=RemoteState.STOPPED,
            )
            self._next_vm_id = max(self._next_vm_id, vm_id + 1)

        # The clone exists from here on; a scripted "boot" failure leaves it behind
        await self._scripted_step("boot")
        # A freshly cloned server is booted before it is handed to the user
        self._vms[vm_id].state = RemoteState.RUNNING
        return ProvisionedVm(vm_id=vm_id, node_name=ref.node_name, ip_address=request.ip_address)

    async def discard_clone(self, request: CloneRequest) -> bool:
        await self._enter("discard_clone", request)
        if request.vm_id is None:
            return False
        found = self._vms.get(request.vm_id)
        if found is None or found.host_name != request.host_name:
            return False
        del self._vms[request.vm_id]
        return True

    async def power_on(self, vm: VmRef) -> None:
        await self._enter("power_on", vm)
        self._require("power_on", vm).state = RemoteState.RUNNING

    async def power_off(self, vm: VmRef) -> None:
        await self._enter("power_off", vm)
        self._require("power_off", vm).state = RemoteState.STOPPED

    async def reboot(self, vm: VmRef) -> None:
        await self._enter("reboot", vm)
        found = self._require("reboot", vm)
        if found.state != RemoteState.RUNNING:
            raise RemotePermanentError("reboot", f"VM {vm.vm_id} is not running")

    async def graceful_shutdown(self, vm: VmRef) -> None:
        await self._enter("graceful_shutdown", vm)
        self._require("graceful_shutdown", vm).state = RemoteState.STOPPED

    async def destroy(self, vm: VmRef) -> None:
        await self._enter("destroy", vm)
        self._require("destroy", vm)
        del self._vms[vm.vm_id]

    async def query_status(self, vm: VmRef) -> RemoteState:
        await self._enter("query_status", vm)
        return self._require("query_status", vm).state
