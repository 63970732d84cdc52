# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/vmware/clients/client.py
from __future__ import annotations

"""
vSphere / vCenter / ESXi client for guestops.
"""

import http.client
import logging
import re
import socket
import ssl
import threading
from typing import Any, Dict, Optional, Sequence

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim, vmodl

from ...core.exceptions import VMwareError
from ..guest.file_manager import GuestFileManager
from ..host_ips import join_host_port
from ..properties import find_by_name, retrieve_one

_MOID_RE = re.compile(r"^vm-\d+$")
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

VCENTER_API_TYPE = "VirtualCenter"


def normalize_thumbprint(thumbprint: Optional[str]) -> Optional[str]:
    """``aa:bb:..`` / ``AABB..`` -> ``AA:BB:..``; empty -> None."""
    s = (thumbprint or "").strip().replace(":", "").replace(" ", "").upper()
    if not s:
        return None
    if len(s) % 2 or not re.fullmatch(r"[0-9A-F]+", s):
        raise ValueError(f"Invalid thumbprint: {thumbprint!r}")
    return ":".join(s[i : i + 2] for i in range(0, len(s), 2))


class VMwareClient:
    """
    Connection to vCenter or ESXi, plus the per-host TLS thumbprint registry
    used by out-of-band guest transfers.
    """

    def __init__(
        self,
        logger: logging.Logger,
        host: str,
        user: str,
        password: str,
        *,
        port: int = 443,
        insecure: bool = False,
        thumbprint: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.logger = logger
        self.host = (host or "").strip()
        self.user = (user or "").strip()
        self.password = password or ""
        self.port = int(port)
        self.insecure = bool(insecure)
        self.server_thumbprint = normalize_thumbprint(thumbprint)
        self.timeout = timeout

        self.si: Any = None
        self._content: Any = None

        self._tp_lock = threading.Lock()
        self._thumbprints: Dict[str, str] = {}

    @classmethod
    def from_config(cls, logger: logging.Logger, cfg: Dict[str, Any]) -> "VMwareClient":
        return cls(
            logger,
            str(cfg.get("vcenter") or ""),
            str(cfg.get("vc_user") or ""),
            str(cfg.get("vc_password") or ""),
            port=int(cfg.get("vc_port") or 443),
            insecure=bool(cfg.get("vc_insecure", False)),
            thumbprint=cfg.get("vc_thumbprint") or None,
            timeout=cfg.get("vc_timeout") or None,
        )

    def has_creds(self) -> bool:
        return bool(self.host and self.user and self.password)

    @property
    def url_host(self) -> str:
        """Authority (``host:port``) of the SDK endpoint."""
        return join_host_port(self.host, self.port)

    # Context managers

    def __enter__(self) -> "VMwareClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            self.disconnect()
        finally:
            if exc_type is not None:
                self.logger.debug("Exception in context: %s: %s", getattr(exc_type, "__name__", exc_type), exc_val)
        return False

    # Connection

    def _ssl_context(self) -> ssl.SSLContext:
        """
        SSL context for the SDK connection.

        With a thumbprint the server certificate is pinned by pyVmomi instead
        of being validated against a CA.
        """
        if self.insecure or self.server_thumbprint:
            if self.insecure and not self.server_thumbprint:
                self.logger.warning(
                    "TLS certificate verification is DISABLED (insecure=True). "
                    "Connections are vulnerable to Man-in-the-Middle attacks."
                )
            ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            return ctx
        return ssl.create_default_context()

    def connect(self) -> None:
        if not self.has_creds():
            raise VMwareError(code=2, msg="Missing vSphere host, user or password")
        ctx = self._ssl_context()
        old_timeout = socket.getdefaulttimeout()
        if self.timeout is not None:
            socket.setdefaulttimeout(float(self.timeout))
        try:
            self.si = SmartConnect(
                host=self.host,
                user=self.user,
                pwd=self.password,
                port=self.port,
                sslContext=ctx,
                thumbprint=self.server_thumbprint,
            )
            self._content = self.si.RetrieveContent()
        except (vmodl.MethodFault, OSError, http.client.HTTPException) as e:
            self.si = None
            self._content = None
            raise VMwareError(
                msg=f"Failed to connect to vSphere {self.url_host}: {getattr(e, 'msg', None) or e}",
                cause=e,
                context={"host": self.host, "port": self.port, "user": self.user},
            ) from e
        finally:
            socket.setdefaulttimeout(old_timeout)

        if self.server_thumbprint:
            self.set_thumbprint(self.url_host, self.server_thumbprint)

        about = getattr(self._content, "about", None)
        self.logger.info(
            "Connected to %s: %s (%s)",
            "vCenter" if self.is_vcenter() else "ESXi",
            self.url_host,
            getattr(about, "fullName", "unknown"),
        )

    def disconnect(self) -> None:
        try:
            if self.si is not None:
                Disconnect(self.si)
        except (vmodl.MethodFault, OSError, http.client.HTTPException) as e:
            self.logger.warning("Error during disconnect: %s", e)
        finally:
            self.si = None
            self._content = None

    def content(self) -> Any:
        if self._content is None:
            raise VMwareError(msg="Not connected")
        return self._content

    def is_vcenter(self) -> bool:
        return getattr(self.content().about, "apiType", None) == VCENTER_API_TYPE

    # Thumbprints

    def set_thumbprint(self, host: str, thumbprint: Optional[str]) -> None:
        """Remember the TLS thumbprint for ``host`` (``name[:port]``); empty clears it."""
        tp = normalize_thumbprint(thumbprint)
        with self._tp_lock:
            if tp is None:
                self._thumbprints.pop(host, None)
            else:
                self._thumbprints[host] = tp

    def thumbprint(self, host: str) -> Optional[str]:
        with self._tp_lock:
            return self._thumbprints.get(host)

    # Properties / inventory

    def retrieve_one(self, obj: Any, paths: Sequence[str]) -> Dict[str, Any]:
        return retrieve_one(self.content().propertyCollector, obj, paths, logger=self.logger)

    def find_vm(self, ident: str) -> Any:
        """
        Locate a VM by managed object id (``vm-42``), BIOS/instance UUID, or name.
        """
        key = (ident or "").strip()
        if not key:
            raise VMwareError(code=2, msg="VM name or id is empty")
        content = self.content()

        if _MOID_RE.match(key):
            vm = vim.VirtualMachine(key, self.si._stub)
            try:
                self.retrieve_one(vm, ["name"])
            except vmodl.fault.ManagedObjectNotFound as e:
                raise VMwareError(msg=f"VM not found: {key}", cause=e) from e
            return vm

        if _UUID_RE.match(key):
            for instance_uuid in (False, True):
                vm = content.searchIndex.FindByUuid(None, key, True, instance_uuid)
                if vm is not None:
                    return vm
            raise VMwareError(msg=f"VM not found: {key}")

        vm = find_by_name(content, vim.VirtualMachine, key)
        if vm is None:
            raise VMwareError(msg=f"VM not found: {key}")
        return vm

    # Guest operations

    def guest_file_manager(self) -> Any:
        gom = getattr(self.content(), "guestOperationsManager", None)
        fm = getattr(gom, "fileManager", None)
        if fm is None:
            raise VMwareError(msg=f"Guest operations are not available on {self.url_host}")
        return fm

    def file_manager_for(self, vm: Any, **kwargs: Any) -> GuestFileManager:
        kwargs.setdefault("logger", self.logger)
        return GuestFileManager(self, vm, **kwargs)
