# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/vmware/guest/file_manager.py
"""
Guest file operations for one virtual machine.

Wraps ``vim.vm.guest.FileManager``: every operation is a single SOAP call
made with the VM reference and the guest credentials. Faults raised by the
server are re-raised as GuestOperationError with the original fault attached.

The one piece of local logic is ``transfer_url``. InitiateFileTransfer{From,To}Guest
return a URL that points at the ESXi host running the VM:

- connected directly to ESXi, the host part is the placeholder ``*``;
- connected to vCenter, the host part is the ESXi inventory name.

The inventory name is whatever was used to add the host to vCenter and may
not resolve from here, so when the host has exactly one management vNIC its IP
is used instead (and remembered per host name). The host's TLS thumbprint is
registered with the client so the transfer can pin it.
"""
from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Iterator, Mapping, Optional, Union
from urllib.parse import SplitResult, urlsplit

from pyVmomi import vmodl

from ...core.exceptions import TransferURLError, wrap_guest_fault
from ...core.logger import TRACE, get_logger
from ..host_ips import join_host_port, management_ips
from ..properties import moref_str

# Set to "false" to keep ESXi inventory names in transfer URLs.
USE_GUEST_TRANSFER_IP_ENV = "GUESTOPS_USE_GUEST_TRANSFER_IP"

VM_TRANSFER_PROPS = ("name", "runtime.host")
HOST_TRANSFER_PROPS = (
    "name",
    "runtime.connectionState",
    "summary.config.sslThumbprint",
    "config.virtualNicManagerInfo.netConfig",
)

_NET_CONFIG = "config.virtualNicManagerInfo.netConfig"

# Arguments kept out of error context.
_OPAQUE_ARGS = ("auth", "fileAttributes")


def prefer_management_ip_from_env(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get(USE_GUEST_TRANSFER_IP_ENV, "") != "false"


def _split_url(url: str) -> SplitResult:
    try:
        parts = urlsplit(url)
        _ = parts.port  # validates the port
    except ValueError as e:
        raise TransferURLError(msg=f"invalid transfer URL: {e}", cause=e) from e
    if not parts.scheme or not parts.hostname:
        raise TransferURLError(msg="invalid transfer URL: missing scheme or host")
    return parts


def _host_of(parts: SplitResult) -> str:
    # SplitResult.hostname lowercases; inventory names are kept as given.
    hostport = parts.netloc.rpartition("@")[2]
    if hostport.startswith("["):
        return hostport[1 : hostport.index("]")]
    return hostport.rpartition(":")[0] if parts.port is not None else hostport.rstrip(":")


def _with_authority(parts: SplitResult, authority: str) -> SplitResult:
    userinfo, at, _ = parts.netloc.rpartition("@")
    return parts._replace(netloc=f"{userinfo}@{authority}" if at else authority)


class GuestFileManager:
    """
    Proxy for the guest FileManager, bound to one VM.

    ``client`` is a connected VMwareClient (or anything offering
    ``guest_file_manager()``, ``is_vcenter()``, ``url_host``,
    ``retrieve_one()`` and ``set_thumbprint()``).
    """

    def __init__(
        self,
        client: Any,
        vm: Any,
        *,
        file_manager: Any = None,
        prefer_management_ip: Optional[bool] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> None:
        self.client = client
        self.vm = vm
        self.logger = get_logger(logger)
        self._fm = file_manager if file_manager is not None else client.guest_file_manager()
        self.prefer_management_ip = (
            prefer_management_ip_from_env() if prefer_management_ip is None else bool(prefer_management_ip)
        )

        self._lock = threading.Lock()
        self._hosts: Dict[str, str] = {}

    @property
    def reference(self) -> Any:
        """The underlying ``vim.vm.guest.FileManager``."""
        return self._fm

    @property
    def cached_hosts(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._hosts)

    def _invoke(self, method: str, **kwargs: Any) -> Any:
        ctx = {k: v for k, v in kwargs.items() if k not in _OPAQUE_ARGS}
        self.logger.log(TRACE, "%s vm=%s %s", method, moref_str(self.vm), ctx)
        try:
            return getattr(self._fm, method)(vm=self.vm, **kwargs)
        except vmodl.MethodFault as e:
            raise wrap_guest_fault(method, e, vm=moref_str(self.vm), **ctx) from e

    # ------------------------------------------------------------------
    # Files and directories
    # ------------------------------------------------------------------

    def change_file_attributes(self, auth: Any, guest_file_path: str, file_attributes: Any) -> None:
        self._invoke(
            "ChangeFileAttributesInGuest",
            auth=auth,
            guestFilePath=guest_file_path,
            fileAttributes=file_attributes,
        )

    def create_temporary_directory(
        self, auth: Any, prefix: str, suffix: str, directory_path: Optional[str] = None
    ) -> str:
        """Create a uniquely named directory; returns its absolute guest path."""
        return self._invoke(
            "CreateTemporaryDirectoryInGuest",
            auth=auth,
            prefix=prefix,
            suffix=suffix,
            directoryPath=directory_path,
        )

    def create_temporary_file(
        self, auth: Any, prefix: str, suffix: str, directory_path: Optional[str] = None
    ) -> str:
        """Create an empty, uniquely named file; returns its absolute guest path."""
        return self._invoke(
            "CreateTemporaryFileInGuest",
            auth=auth,
            prefix=prefix,
            suffix=suffix,
            directoryPath=directory_path,
        )

    def delete_directory(self, auth: Any, directory_path: str, recursive: bool = False) -> None:
        self._invoke(
            "DeleteDirectoryInGuest",
            auth=auth,
            directoryPath=directory_path,
            recursive=recursive,
        )

    def delete_file(self, auth: Any, file_path: str) -> None:
        self._invoke("DeleteFileInGuest", auth=auth, filePath=file_path)

    def list_files(
        self,
        auth: Any,
        file_path: str,
        index: int = 0,
        max_results: Optional[int] = None,
        match_pattern: Optional[str] = None,
    ) -> Any:
        """
        One page of ``ListFilesInGuest``.

        The result has ``files`` and ``remaining``; pass ``index`` past the
        files already seen to fetch the next page (or use ``iter_files``).
        """
        return self._invoke(
            "ListFilesInGuest",
            auth=auth,
            filePath=file_path,
            index=index,
            maxResults=max_results,
            matchPattern=match_pattern,
        )

    def iter_files(
        self,
        auth: Any,
        file_path: str,
        match_pattern: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Iterator[Any]:
        """Yield every FileInfo under ``file_path``, following ``remaining``."""
        index = 0
        while True:
            batch = self.list_files(
                auth, file_path, index=index, max_results=page_size, match_pattern=match_pattern
            )
            files = list(getattr(batch, "files", None) or [])
            yield from files
            remaining = int(getattr(batch, "remaining", 0) or 0)
            if remaining <= 0 or not files:
                return
            index += len(files)

    def make_directory(self, auth: Any, directory_path: str, create_parent_directories: bool = False) -> None:
        self._invoke(
            "MakeDirectoryInGuest",
            auth=auth,
            directoryPath=directory_path,
            createParentDirectories=create_parent_directories,
        )

    def move_directory(self, auth: Any, src_directory_path: str, dst_directory_path: str) -> None:
        self._invoke(
            "MoveDirectoryInGuest",
            auth=auth,
            srcDirectoryPath=src_directory_path,
            dstDirectoryPath=dst_directory_path,
        )

    def move_file(self, auth: Any, src_file_path: str, dst_file_path: str, overwrite: bool = False) -> None:
        self._invoke(
            "MoveFileInGuest",
            auth=auth,
            srcFilePath=src_file_path,
            dstFilePath=dst_file_path,
            overwrite=overwrite,
        )

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def initiate_file_transfer_from_guest(self, auth: Any, guest_file_path: str) -> Any:
        """Returns FileTransferInformation (``attributes``, ``size``, ``url``)."""
        return self._invoke(
            "InitiateFileTransferFromGuest",
            auth=auth,
            guestFilePath=guest_file_path,
        )

    def initiate_file_transfer_to_guest(
        self,
        auth: Any,
        guest_file_path: str,
        file_attributes: Any,
        file_size: int,
        overwrite: bool,
    ) -> str:
        """Returns the URL the file body must be PUT to."""
        return self._invoke(
            "InitiateFileTransferToGuest",
            auth=auth,
            guestFilePath=guest_file_path,
            fileAttributes=file_attributes,
            fileSize=int(file_size),
            overwrite=overwrite,
        )

    def transfer_url(self, url: str) -> str:
        """
        Rewrite a transfer URL so it names a reachable host, and register that
        host's thumbprint with the client.
        """
        parts = _split_url(url)

        if parts.hostname == "*":
            # Also use the client's port, to support port forwarding.
            parts = _with_authority(parts, self.client.url_host)

        if not self.client.is_vcenter():
            # Connected to the ESXi host itself; its trust is the client's own.
            return parts.geturl()

        name = _host_of(parts)
        port = parts.port

        with self._lock:
            cached = self._hosts.get(name)

        if cached is not None:
            self.logger.debug("Transfer host %s -> %s (cached)", name, cached)
            return _with_authority(parts, join_host_port(cached, port)).geturl()

        vm_props = self.client.retrieve_one(self.vm, VM_TRANSFER_PROPS)
        host_ref = vm_props.get("runtime.host")
        if host_ref is None:
            # Powered off; InitiateFileTransfer would have failed already.
            return parts.geturl()

        host_props = self.client.retrieve_one(host_ref, HOST_TRANSFER_PROPS)
        if _NET_CONFIG not in host_props:
            raise TransferURLError(
                msg=(
                    f"guest transfer URL failed for vm {vm_props.get('name')!r} ({moref_str(self.vm)}): "
                    f"host {host_props.get('name')!r} ({moref_str(host_ref)}) config is unset, "
                    f"connectionState={host_props.get('runtime.connectionState')}"
                ),
                context={"vm": moref_str(self.vm), "host": moref_str(host_ref)},
            )

        ips = management_ips(host_props.get(_NET_CONFIG))
        if len(ips) == 1 and self.prefer_management_ip:
            mname = str(ips[0])
            with self._lock:
                self._hosts[name] = mname
            self.logger.debug("Transfer host %s -> management IP %s", name, mname)
            name = mname
        elif len(ips) > 1:
            self.logger.debug("Host %s has %d management IPs; keeping inventory name", name, len(ips))

        authority = join_host_port(name, port)
        parts = _with_authority(parts, authority)

        thumbprint = host_props.get("summary.config.sslThumbprint")
        if thumbprint:
            self.client.set_thumbprint(authority, thumbprint)
        else:
            self.logger.debug("Host %s reported no SSL thumbprint", moref_str(host_ref))

        return parts.geturl()
