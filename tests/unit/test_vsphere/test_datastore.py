# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for datastore and VM storage helpers."""
from __future__ import annotations

from types import SimpleNamespace

import pytest
from fakes.fake_vsphere import FakeDatastore, FakeTask, FakeVM, build_env, make_session
from ovaimporter.core.context import DeployContext
from ovaimporter.core.exceptions import NotFoundError, OvaImporterError
from ovaimporter.vsphere.datastore import (
    datastore_capacity,
    get_vm_properties,
    remove_nics,
    vm_total_storage_size,
    wait_for_task,
)
from pyVmomi import vim


@pytest.fixture
def env():
    return build_env()


@pytest.fixture
def session(env):
    return make_session(env)


@pytest.mark.unit
class TestDatastoreCapacity:
    def test_capacity_in_gib(self, session):
        assert datastore_capacity(session) == (100.0, 40.0)

    def test_no_datastore(self, session):
        session.datastore = None
        with pytest.raises(OvaImporterError) as ei:
            datastore_capacity(session)
        assert str(ei.value) == "no datastore specified in connection session"

    def test_missing_summary(self, session):
        session.datastore = FakeDatastore("bare", summary=False)
        with pytest.raises(OvaImporterError, match="'bare' has no summary"):
            datastore_capacity(session)


@pytest.mark.unit
class TestVmStorage:
    def test_sums_disk_capacity(self, env, session):
        FakeVM(
            "db01",
            env.datacenters[0].vmFolder,
            devices=[
                vim.vm.device.VirtualDisk(key=2000, capacityInKB=10_000_000),
                vim.vm.device.VirtualDisk(key=2001, capacityInKB=2_500_000),
                vim.vm.device.VirtualVmxnet3(key=4000),
            ],
        )
        assert vm_total_storage_size(session, "db01") == 12.5

    def test_unknown_vm(self, session):
        with pytest.raises(NotFoundError):
            vm_total_storage_size(session, "ghost")

    def test_dotted_properties(self):
        vm = SimpleNamespace(name="web", summary=None, config=SimpleNamespace(hardware=SimpleNamespace(device=[1, 2])))
        props = get_vm_properties(vm)
        assert props == {"name": "web", "summary": None, "config.hardware.device": [1, 2]}
        assert get_vm_properties(vm, ["config.nope.device"]) == {"config.nope.device": None}


@pytest.mark.unit
class TestTasks:
    def test_task_success(self):
        assert wait_for_task(FakeTask("success", result="ok"), DeployContext.background()) == "ok"

    def test_task_error(self):
        task = FakeTask("error", error=SimpleNamespace(localizedMessage="device busy"))
        with pytest.raises(OvaImporterError, match="device busy"):
            wait_for_task(task, DeployContext.background())

    def test_remove_nics_without_nics(self):
        vm = FakeVM("web", devices=[vim.vm.device.VirtualDisk(key=2000)])
        assert remove_nics(vm, DeployContext.background()) == 0
        assert vm.reconfig_specs == []

    def test_remove_nics(self):
        vm = FakeVM("web", devices=[vim.vm.device.VirtualE1000(key=4000), vim.vm.device.VirtualVmxnet3(key=4001)])
        assert remove_nics(vm, DeployContext.background()) == 2
        assert vm.config.hardware.device == []
        ops = [c.operation for c in vm.reconfig_specs[0].deviceChange]
        assert ops == ["remove", "remove"]
