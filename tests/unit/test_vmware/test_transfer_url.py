# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for transfer URL host resolution and thumbprint registration."""
from __future__ import annotations

import os
import threading
from unittest.mock import MagicMock, patch

import pytest
from pyVmomi import vim, vmodl

from fakes.fake_vsphere import FakeClient, net_config
from guestops.core.exceptions import TransferError, TransferURLError
from guestops.vmware.guest.file_manager import (
    HOST_TRANSFER_PROPS,
    USE_GUEST_TRANSFER_IP_ENV,
    GuestFileManager,
    prefer_management_ip_from_env,
)

VM = vim.VirtualMachine("vm-42")
HOST = vim.HostSystem("host-7")
THUMB = "AA:BB:CC:DD:EE:FF:00:11:22:33:44:55:66:77:88:99:AA:BB:CC:DD"
URL = "https://esx-01.lab:443/guestFile?id=17&token=52a1"


def _props(*mgmt_ips, net=None, thumbprint=THUMB, host=HOST):
    host_props = {
        "name": "esx-01.lab",
        "runtime.connectionState": "connected",
    }
    if thumbprint is not None:
        host_props["summary.config.sslThumbprint"] = thumbprint
    if net is None:
        net = [net_config("management", *mgmt_ips), net_config("vmotion", "192.168.50.5")]
    if net is not False:
        host_props["config.virtualNicManagerInfo.netConfig"] = net
    vm_props = {"name": "web01"}
    if host is not None:
        vm_props["runtime.host"] = host
    return {"VirtualMachine:vm-42": vm_props, "HostSystem:host-7": host_props}


def _fm(client, **kw):
    kw.setdefault("prefer_management_ip", True)
    return GuestFileManager(client, VM, file_manager=MagicMock(), **kw)


@pytest.mark.unit
class TestDirectESXi:
    def test_placeholder_host_replaced_with_client_host(self):
        client = FakeClient(vcenter=False, url_host="esx-01.lab:8443")
        url = _fm(client).transfer_url("https://*/guestFile?id=17&token=52a1")

        assert url == "https://esx-01.lab:8443/guestFile?id=17&token=52a1"
        assert client.retrieved == []
        assert client.thumbprints == {}

    def test_named_host_returned_unchanged(self):
        client = FakeClient(vcenter=False)
        assert _fm(client).transfer_url(URL) == URL
        assert client.retrieved == []


@pytest.mark.unit
class TestVCenterResolution:
    def test_single_management_ip_replaces_host(self):
        client = FakeClient(props=_props("10.0.0.5"))
        fm = _fm(client)

        url = fm.transfer_url(URL)

        assert url == "https://10.0.0.5:443/guestFile?id=17&token=52a1"
        assert client.thumbprints == {"10.0.0.5:443": THUMB}
        assert fm.cached_hosts == {"esx-01.lab": "10.0.0.5"}

    def test_host_properties_requested(self):
        client = FakeClient(props=_props("10.0.0.5"))
        _fm(client).transfer_url(URL)

        assert client.retrieved == [
            ("VirtualMachine:vm-42", ("name", "runtime.host")),
            ("HostSystem:host-7", HOST_TRANSFER_PROPS),
        ]

    def test_cache_hit_skips_property_lookups(self):
        client = FakeClient(props=_props("10.0.0.5"))
        fm = _fm(client)
        first = fm.transfer_url(URL)
        calls = list(client.retrieved)
        client.thumbprints.clear()

        second = fm.transfer_url("https://esx-01.lab:443/guestFile?id=18&token=ffff")

        assert client.retrieved == calls
        assert client.thumbprints == {}
        assert first.startswith("https://10.0.0.5:443/")
        assert second == "https://10.0.0.5:443/guestFile?id=18&token=ffff"

    def test_cache_hit_keeps_port_of_new_url(self):
        client = FakeClient(props=_props("10.0.0.5"))
        fm = _fm(client)
        fm.transfer_url(URL)

        assert fm.transfer_url("https://esx-01.lab:902/guestFile?id=1") == "https://10.0.0.5:902/guestFile?id=1"

    def test_multiple_management_ips_keep_inventory_name(self):
        client = FakeClient(props=_props("10.0.0.5", "10.0.0.6"))
        fm = _fm(client)

        assert fm.transfer_url(URL) == URL
        assert client.thumbprints == {"esx-01.lab:443": THUMB}
        assert fm.cached_hosts == {}

    def test_no_management_ip_keeps_inventory_name(self):
        client = FakeClient(props=_props(net=[net_config("vmotion", "192.168.50.5")]))
        fm = _fm(client)

        assert fm.transfer_url(URL) == URL
        assert client.thumbprints == {"esx-01.lab:443": THUMB}

    def test_unselected_candidate_is_not_a_management_ip(self):
        net = [net_config("management", "10.0.0.5", "10.0.0.6", selected=["key-vim.host.VirtualNic-vmk1"])]
        client = FakeClient(props=_props(net=net))

        assert _fm(client).transfer_url(URL) == "https://10.0.0.6:443/guestFile?id=17&token=52a1"

    def test_preference_disabled_keeps_inventory_name(self):
        client = FakeClient(props=_props("10.0.0.5"))
        fm = _fm(client, prefer_management_ip=False)

        assert fm.transfer_url(URL) == URL
        assert client.thumbprints == {"esx-01.lab:443": THUMB}
        assert fm.cached_hosts == {}

    def test_ipv6_management_ip_is_bracketed(self):
        client = FakeClient(props=_props("fd00::5"))

        url = _fm(client).transfer_url(URL)

        assert url == "https://[fd00::5]:443/guestFile?id=17&token=52a1"
        assert client.thumbprints == {"[fd00::5]:443": THUMB}

    def test_url_without_port(self):
        client = FakeClient(props=_props("10.0.0.5"))

        url = _fm(client).transfer_url("https://esx-01.lab/guestFile?id=17")

        assert url == "https://10.0.0.5/guestFile?id=17"
        assert client.thumbprints == {"10.0.0.5": THUMB}

    def test_userinfo_is_preserved(self):
        client = FakeClient(props=_props("10.0.0.5"))

        url = _fm(client).transfer_url("https://user@esx-01.lab:443/guestFile?id=17")

        assert url == "https://user@10.0.0.5:443/guestFile?id=17"

    def test_inventory_name_case_is_preserved(self):
        client = FakeClient(props=_props("10.0.0.5", "10.0.0.6"))
        url = "https://ESX-01.Lab:443/guestFile?id=17"

        assert _fm(client).transfer_url(url) == url

    def test_missing_thumbprint_is_not_registered(self):
        client = FakeClient(props=_props("10.0.0.5", thumbprint=None))

        assert _fm(client).transfer_url(URL).startswith("https://10.0.0.5:443/")
        assert client.thumbprints == {}

    def test_concurrent_callers_agree(self):
        client = FakeClient(props=_props("10.0.0.5"))
        fm = _fm(client)
        results = []

        def worker():
            results.append(fm.transfer_url(URL))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert set(results) == {"https://10.0.0.5:443/guestFile?id=17&token=52a1"}
        assert fm.cached_hosts == {"esx-01.lab": "10.0.0.5"}


@pytest.mark.unit
class TestUnresolvable:
    def test_powered_off_vm_returns_url_unchanged(self):
        client = FakeClient(props=_props("10.0.0.5", host=None))

        assert _fm(client).transfer_url(URL) == URL
        assert client.retrieved == [("VirtualMachine:vm-42", ("name", "runtime.host"))]
        assert client.thumbprints == {}

    def test_host_config_unset_raises(self):
        client = FakeClient(props=_props(net=False))

        with pytest.raises(TransferURLError) as ei:
            _fm(client).transfer_url(URL)

        msg = str(ei.value)
        assert "web01" in msg
        assert "vm-42" in msg
        assert "esx-01.lab" in msg
        assert "host-7" in msg
        assert "config is unset" in msg
        assert isinstance(ei.value, TransferError)
        assert client.thumbprints == {}

    @pytest.mark.parametrize("bad", ["not a url", "https://esx-01.lab:99999/guestFile", "/guestFile?id=1"])
    def test_malformed_url_raises(self, bad):
        client = FakeClient(props=_props("10.0.0.5"))

        with pytest.raises(TransferURLError):
            _fm(client).transfer_url(bad)
        assert client.retrieved == []

    def test_vm_lookup_fault_propagates(self):
        fault = vmodl.fault.ManagedObjectNotFound(obj=VM, msg="vm-42 is gone")
        client = FakeClient(props=_props("10.0.0.5"), errors={"VirtualMachine:vm-42": fault})
        fm = _fm(client)

        with pytest.raises(vmodl.fault.ManagedObjectNotFound) as ei:
            fm.transfer_url(URL)

        assert ei.value is fault
        assert fm.cached_hosts == {}
        assert client.thumbprints == {}

    def test_host_lookup_fault_propagates(self):
        fault = vmodl.fault.ManagedObjectNotFound(obj=HOST, msg="host-7 is gone")
        client = FakeClient(props=_props("10.0.0.5"), errors={"HostSystem:host-7": fault})
        fm = _fm(client)

        with pytest.raises(vmodl.fault.ManagedObjectNotFound) as ei:
            fm.transfer_url(URL)

        assert ei.value is fault
        assert [key for key, _ in client.retrieved] == ["VirtualMachine:vm-42", "HostSystem:host-7"]
        assert fm.cached_hosts == {}
        assert client.thumbprints == {}


@pytest.mark.unit
class TestPreferenceFromEnvironment:
    def test_unset_means_prefer(self):
        assert prefer_management_ip_from_env({}) is True

    def test_false_disables(self):
        assert prefer_management_ip_from_env({USE_GUEST_TRANSFER_IP_ENV: "false"}) is False

    @pytest.mark.parametrize("value", ["", "0", "no", "FALSE", "true"])
    def test_other_values_keep_preference(self, value):
        assert prefer_management_ip_from_env({USE_GUEST_TRANSFER_IP_ENV: value}) is True

    def test_constructor_reads_environment_when_not_given(self):
        client = FakeClient(props=_props("10.0.0.5"))
        with patch.dict(os.environ, {USE_GUEST_TRANSFER_IP_ENV: "false"}):
            fm = GuestFileManager(client, VM, file_manager=MagicMock())

        assert fm.prefer_management_ip is False
        assert fm.transfer_url(URL) == URL

    def test_explicit_argument_beats_environment(self):
        client = FakeClient(props=_props("10.0.0.5"))
        with patch.dict(os.environ, {USE_GUEST_TRANSFER_IP_ENV: "false"}):
            fm = GuestFileManager(client, VM, file_manager=MagicMock(), prefer_management_ip=True)

        assert fm.transfer_url(URL).startswith("https://10.0.0.5:443/")
