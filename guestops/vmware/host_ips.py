# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/vmware/host_ips.py
"""
ESXi management address helpers.

A HostSystem lists its VMkernel NICs per service in
``config.virtualNicManagerInfo.netConfig``. The vNICs *selected* for the
"management" service carry the addresses a client can reach hostd on.
"""
from __future__ import annotations

import ipaddress
from typing import Any, Iterable, List, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

MANAGEMENT_NIC_TYPE = "management"


def _parse_ip(value: Optional[str]) -> Optional[IPAddress]:
    if not value:
        return None
    try:
        return ipaddress.ip_address(str(value).strip())
    except ValueError:
        return None


def management_ips(net_config: Optional[Iterable[Any]]) -> List[IPAddress]:
    """
    IPs of the selected management vNICs, in candidate order.

    Candidates not listed in ``selectedVnic`` and addresses that do not parse
    (DHCP placeholders, empty specs) are skipped.
    """
    ips: List[IPAddress] = []
    for nc in net_config or []:
        if getattr(nc, "nicType", None) != MANAGEMENT_NIC_TYPE:
            continue
        selected = set(getattr(nc, "selectedVnic", None) or [])
        for vnic in getattr(nc, "candidateVnic", None) or []:
            if getattr(vnic, "key", None) not in selected:
                continue
            spec = getattr(vnic, "spec", None)
            ip_cfg = getattr(spec, "ip", None)
            ip = _parse_ip(getattr(ip_cfg, "ipAddress", None))
            if ip is not None:
                ips.append(ip)
    return ips


def join_host_port(host: str, port: Optional[Union[int, str]]) -> str:
    """
    Build a URL authority from host and port.

        >>> join_host_port("10.0.0.5", 443)
        '10.0.0.5:443'
        >>> join_host_port("fd00::5", None)
        '[fd00::5]'
    """
    h = host
    if ":" in h and not h.startswith("["):
        h = f"[{h}]"
    if port is None or port == "":
        return h
    return f"{h}:{port}"
