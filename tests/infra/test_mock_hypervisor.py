"""
Tests for the in-memory hypervisor used in development and tests.
"""

import pytest

from vps_dashboard.infra.hypervisor.base import (
    CloneRequest,
    RemoteNotFoundError,
    RemoteState,
    RemoteTransientError,
    VmRef,
)
from vps_dashboard.infra.hypervisor.mock_client import MockHypervisorClient


async def test_clone_boots_on_template_node(hypervisor: MockHypervisorClient):
    provisioned = await hypervisor.clone(
        CloneRequest(
            template=VmRef(node_name="pve2", vm_id=9001),
            host_name="db-01",
            ip_address="10.0.0.9",
            gateway="10.0.0.1",
            netmask=24,
            cpu_cores=1,
            ram_gb=1,
        )
    )
    assert provisioned.node_name == "pve2"
    assert await hypervisor.query_status(VmRef("pve2", provisioned.vm_id)) == RemoteState.RUNNING


async def test_power_cycle(hypervisor: MockHypervisorClient):
    vm = hypervisor.add_vm(300, "pve1")
    await hypervisor.graceful_shutdown(vm)
    assert hypervisor.state_of(300) == RemoteState.STOPPED
    await hypervisor.power_on(vm)
    await hypervisor.reboot(vm)
    assert hypervisor.state_of(300) == RemoteState.RUNNING
    await hypervisor.destroy(vm)
    assert hypervisor.state_of(300) is None


async def test_wrong_node_is_not_found(hypervisor: MockHypervisorClient):
    hypervisor.add_vm(300, "pve1")
    with pytest.raises(RemoteNotFoundError):
        await hypervisor.power_off(VmRef("pve2", 300))


async def test_scripted_failure_applies_once(hypervisor: MockHypervisorClient):
    vm = hypervisor.add_vm(300, "pve1", state=RemoteState.STOPPED)
    hypervisor.fail_next("power_on", RemoteTransientError("power_on", "busy"))

    with pytest.raises(RemoteTransientError):
        await hypervisor.power_on(vm)
    await hypervisor.power_on(vm)

    assert hypervisor.call_count("power_on") == 2
    assert hypervisor.state_of(300) == RemoteState.RUNNING


async def test_clone_under_own_id_resumes_and_discards(hypervisor: MockHypervisorClient):
    request = CloneRequest(
        template=VmRef(node_name="pve1", vm_id=9000),
        host_name="web-01",
        ip_address="10.0.0.5",
        gateway="10.0.0.1",
        netmask=24,
        cpu_cores=1,
        ram_gb=1,
        vm_id=120,
    )
    hypervisor.fail_next("boot", RemoteTransientError("boot", "busy"))

    with pytest.raises(RemoteTransientError):
        await hypervisor.clone(request)
    assert hypervisor.state_of(120) == RemoteState.STOPPED

    provisioned = await hypervisor.clone(request)
    assert provisioned.vm_id == 120
    assert hypervisor.state_of(120) == RemoteState.RUNNING

    assert await hypervisor.discard_clone(request) is True
    assert hypervisor.state_of(120) is None
