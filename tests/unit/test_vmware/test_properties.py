# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from pyVmomi import vim

from guestops.vmware.properties import build_filter_spec, find_by_name, moref_str, retrieve_one


@pytest.mark.unit
class TestMorefStr:
    def test_managed_object(self):
        assert moref_str(vim.VirtualMachine("vm-42")) == "VirtualMachine:vm-42"
        assert moref_str(vim.HostSystem("host-7")) == "HostSystem:host-7"

    def test_plain_value(self):
        assert moref_str("whatever") == "whatever"


@pytest.mark.unit
class TestRetrieveOne:
    def test_filter_spec_targets_one_object(self):
        vm = vim.VirtualMachine("vm-42")
        spec = build_filter_spec(vm, ("name", "runtime.host"))

        assert spec.objectSet[0].obj is vm
        assert spec.propSet[0].pathSet == ["name", "runtime.host"]
        assert spec.propSet[0].all is False

    def test_props_keyed_by_path(self):
        host = vim.HostSystem("host-7")
        pc = MagicMock()
        pc.RetrieveContents.return_value = [
            SimpleNamespace(
                propSet=[SimpleNamespace(name="name", val="web01"), SimpleNamespace(name="runtime.host", val=host)],
                missingSet=[],
            )
        ]

        props = retrieve_one(pc, vim.VirtualMachine("vm-42"), ["name", "runtime.host"])

        assert props == {"name": "web01", "runtime.host": host}
        assert pc.RetrieveContents.call_count == 1

    def test_unset_properties_absent(self):
        pc = MagicMock()
        pc.RetrieveContents.return_value = [
            SimpleNamespace(
                propSet=[SimpleNamespace(name="name", val="esx-01.lab")],
                missingSet=[SimpleNamespace(path="config.virtualNicManagerInfo.netConfig", fault=None)],
            )
        ]

        props = retrieve_one(pc, vim.HostSystem("host-7"), ["name", "config.virtualNicManagerInfo.netConfig"])

        assert props == {"name": "esx-01.lab"}

    def test_no_contents(self):
        pc = MagicMock()
        pc.RetrieveContents.return_value = None
        assert retrieve_one(pc, vim.VirtualMachine("vm-42"), ["name"]) == {}

    def test_faults_propagate(self):
        pc = MagicMock()
        pc.RetrieveContents.side_effect = vim.fault.InvalidState(msg="gone")
        with pytest.raises(vim.fault.InvalidState):
            retrieve_one(pc, vim.VirtualMachine("vm-42"), ["name"])


@pytest.mark.unit
class TestFindByName:
    def _content(self, objects):
        content = MagicMock()
        content.propertyCollector.RetrieveContents.return_value = [
            SimpleNamespace(obj=obj, propSet=[SimpleNamespace(name="name", val=name)]) for name, obj in objects
        ]
        return content

    @patch("guestops.vmware.properties.vmodl")
    def test_match(self, _vmodl):
        vm = object()
        content = self._content([("db01", object()), ("web01", vm)])

        assert find_by_name(content, vim.VirtualMachine, "web01") is vm
        content.viewManager.CreateContainerView.return_value.Destroy.assert_called_once_with()

    @patch("guestops.vmware.properties.vmodl")
    def test_no_match_still_destroys_view(self, _vmodl):
        content = self._content([("db01", object())])

        assert find_by_name(content, vim.VirtualMachine, "web01") is None
        content.viewManager.CreateContainerView.return_value.Destroy.assert_called_once_with()
