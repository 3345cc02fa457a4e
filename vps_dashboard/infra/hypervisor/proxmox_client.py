"""
ProxmoxClient — HypervisorClientBase over the Proxmox VE REST API.

Every mutating Proxmox endpoint returns a task id (UPID) immediately; the client
polls the task until it finishes so callers see a blocking operation.
"""

import asyncio
import logging
import time
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import SecretStr

from vps_dashboard.config import settings
from vps_dashboard.infra.hypervisor.base import (
    CloneRequest,
    HypervisorClientBase,
    ProvisionedVm,
    RemoteNotFoundError,
    RemotePermanentError,
    RemoteState,
    RemoteTransientError,
    VmIdConflictError,
    VmRef,
)

logger = logging.getLogger(__name__)

# Responses worth retrying; everything else >= 400 is permanent
_TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 502, 503, 504})
# Another task holds the VM lock; clears once that task ends
_LOCKED_MARKER = "is locked"
_EXISTS_MARKER = "already exists"


class ProxmoxClient(HypervisorClientBase):
    def __init__(
        self,
        base_url: str,
        token: SecretStr,
        verify_tls: bool = True,
        request_timeout_s: float = 10.0,
        task_poll_interval_s: float = 1.0,
        task_timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._task_poll_interval_s = task_poll_interval_s
        self._task_timeout_s = task_timeout_s
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"PVEAPIToken={token.get_secret_value()}",
                "Accept": "application/json",
            },
            verify=verify_tls,
            timeout=request_timeout_s,
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> "ProxmoxClient":
        return cls(
            base_url=settings.proxmox_url,
            token=settings.proxmox_token,
            verify_tls=settings.proxmox_verify_tls,
            request_timeout_s=settings.proxmox_request_timeout_s,
            task_poll_interval_s=settings.proxmox_task_poll_interval_s,
            task_timeout_s=settings.proxmox_task_timeout_s,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        data: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._http.request(method, path, data=data)
        except httpx.TimeoutException as exc:
            raise RemoteTransientError(operation, f"request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise RemoteTransientError(operation, f"hypervisor unreachable: {exc}") from exc

        if response.status_code >= 400:
            body = response.text
            logger.debug(
                "Proxmox request failed",
                extra={"operation": operation, "path": path, "status_code": response.status_code},
            )
            if response.status_code in _TRANSIENT_STATUS_CODES or _LOCKED_MARKER in body:
                raise RemoteTransientError(operation, f"status {response.status_code}: {body}")
            if _EXISTS_MARKER in body:
                raise VmIdConflictError(operation, f"status {response.status_code}: {body}")
            if response.status_code == 404 or "does not exist" in body:
                raise RemoteNotFoundError(operation, f"status {response.status_code}: {body}")
            raise RemotePermanentError(operation, f"status {response.status_code}: {body}")

        return response.json().get("data")

    async def _wait_for_task(self, operation: str, node_name: str, upid: str) -> None:
        path = f"/nodes/{node_name}/tasks/{quote(upid, safe='')}/status"
        deadline = time.monotonic() + self._task_timeout_s
        while True:
            task = await self._request(operation, "GET", path) or {}
            if task.get("status") == "stopped":
                exit_status = task.get("exitstatus")
                if exit_status == "OK":
                    return
                if _EXISTS_MARKER in (exit_status or ""):
                    raise VmIdConflictError(operation, f"task {upid} failed: {exit_status}")
                raise RemotePermanentError(
                    operation, f"task {upid} failed: {exit_status or 'unexpected'}"
                )
            if time.monotonic() >= deadline:
                raise RemoteTransientError(
                    operation, f"task {upid} still running after {self._task_timeout_s}s"
                )
            await asyncio.sleep(self._task_poll_interval_s)

    async def _run_task(
        self,
        operation: str,
        method: str,
        vm: VmRef,
        path: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        upid = await self._request(operation, method, path, data)
        logger.debug(
            "Proxmox task started",
            extra={"operation": operation, "vm_id": vm.vm_id, "node": vm.node_name, "upid": upid},
        )
        await self._wait_for_task(operation, vm.node_name, upid)

    async def next_vm_id(self) -> int:
        return int(await self._request("next_vm_id", "GET", "/cluster/nextid"))

    async def _vm_name(self, operation: str, vm: VmRef) -> str | None:
        """Name of ``vm``, or None when no VM carries that id."""
        try:
            config = await self._request(
                operation, "GET", f"/nodes/{vm.node_name}/qemu/{vm.vm_id}/config"
            )
        except RemoteNotFoundError:
            return None
        return (config or {}).get("name", "")

    async def clone(self, request: CloneRequest) -> ProvisionedVm:
        template = request.template
        resuming = False
        if request.vm_id is None:
            new_id = await self.next_vm_id()
        else:
            new_id = request.vm_id
            existing = await self._vm_name(
                "clone", VmRef(node_name=template.node_name, vm_id=new_id)
            )
            if existing is not None and existing != request.host_name:
                raise VmIdConflictError("clone", f"VM {new_id} already exists as '{existing}'")
            resuming = existing is not None
        new_vm = VmRef(node_name=template.node_name, vm_id=new_id)

        if resuming:
            logger.info(
                "Resuming clone on existing VM",
                extra={"vm_id": new_id, "node": new_vm.node_name, "host_name": request.host_name},
            )
        else:
            await self._run_task(
                "clone",
                "POST",
                template,
                f"/nodes/{template.node_name}/qemu/{template.vm_id}/clone",
                {"newid": new_id, "name": request.host_name, "full": 1},
            )
        await self._run_task(
            "clone",
            "POST",
            new_vm,
            f"/nodes/{new_vm.node_name}/qemu/{new_id}/config",
            {
                "ipconfig0": (
                    f"ip={request.ip_address}/{request.netmask},gw={request.gateway}"
                ),
                "cores": request.cpu_cores,
                "memory": request.ram_gb * 1024,
            },
        )
        if not resuming or await self.query_status(new_vm) != RemoteState.RUNNING:
            await self.power_on(new_vm)
        return ProvisionedVm(
            vm_id=new_id, node_name=new_vm.node_name, ip_address=request.ip_address
        )

    async def discard_clone(self, request: CloneRequest) -> bool:
        if request.vm_id is None:
            return False
        vm = VmRef(node_name=request.template.node_name, vm_id=request.vm_id)
        if await self._vm_name("discard_clone", vm) != request.host_name:
            return False
        if await self.query_status(vm) == RemoteState.RUNNING:
            await self.power_off(vm)
        await self.destroy(vm)
        return True

    async def power_on(self, vm: VmRef) -> None:
        await self._run_task(
            "power_on", "POST", vm, f"/nodes/{vm.node_name}/qemu/{vm.vm_id}/status/start"
        )

    async def power_off(self, vm: VmRef) -> None:
        await self._run_task(
            "power_off", "POST", vm, f"/nodes/{vm.node_name}/qemu/{vm.vm_id}/status/stop"
        )

    async def reboot(self, vm: VmRef) -> None:
        await self._run_task(
            "reboot", "POST", vm, f"/nodes/{vm.node_name}/qemu/{vm.vm_id}/status/reboot"
        )

    async def graceful_shutdown(self, vm: VmRef) -> None:
        await self._run_task(
            "graceful_shutdown",
            "POST",
            vm,
            f"/nodes/{vm.node_name}/qemu/{vm.vm_id}/status/shutdown",
        )

    async def destroy(self, vm: VmRef) -> None:
        await self._run_task("destroy", "DELETE", vm, f"/nodes/{vm.node_name}/qemu/{vm.vm_id}")

    async def query_status(self, vm: VmRef) -> RemoteState:
        data = await self._request(
            "query_status", "GET", f"/nodes/{vm.node_name}/qemu/{vm.vm_id}/status/current"
        )
        try:
            return RemoteState((data or {}).get("status", "unknown"))
        except ValueError:
            return RemoteState.UNKNOWN
