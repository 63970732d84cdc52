# SPDX-License-Identifier: LGPL-3.0-or-later
# guestops/vmware/errors.py
# -*- coding: utf-8 -*-
"""Error classification and exit code handling for guest operations"""
from __future__ import annotations

import errno
import socket
from enum import IntEnum
from typing import Iterator, Set

import requests

from ..core.exceptions import Fatal, GuestOpsError, TransferError, VMwareError


class GuestExitCode(IntEnum):
    OK = 0
    UNKNOWN = 1
    USAGE = 2

    AUTH = 10
    NOT_FOUND = 11
    NETWORK = 12
    GUEST_UNAVAILABLE = 14
    TRANSFER = 15

    VSPHERE_API = 30
    LOCAL_IO = 40

    INTERRUPTED = 130


_AUTH_FAULTS = {
    "InvalidGuestLogin",
    "GuestPermissionDenied",
    "GuestAuthenticationChallenge",
    "InvalidLogin",
    "NoPermission",
    "NotAuthenticated",
}
_NOT_FOUND_FAULTS = {"FileNotFound", "ManagedObjectNotFound"}
_UNAVAILABLE_FAULTS = {
    "GuestOperationsUnavailable",
    "GuestComponentsOutOfDate",
    "InvalidPowerState",
    "ToolsUnavailable",
}


def _chain(e: BaseException) -> Iterator[BaseException]:
    seen: Set[int] = set()
    cur = e
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        yield cur
        nxt = cur.cause if isinstance(cur, GuestOpsError) else None
        cur = nxt or cur.__cause__


def _fault_names(e: BaseException) -> Set[str]:
    """WSDL names of every fault class in the cause chain (subclasses match their bases)."""
    names: Set[str] = set()
    for exc in _chain(e):
        for cls in type(exc).__mro__:
            names.add(str(getattr(cls, "_wsdlName", cls.__name__)).rsplit(".", 1)[-1])
    return names


def _is_auth_error(e: BaseException) -> bool:
    msg = str(e).lower()
    needles = ["not authenticated", "invalid login", "incorrect user name or password", "permission denied"]
    return any(n in msg for n in needles)


def _is_not_found_error(e: BaseException) -> bool:
    msg = str(e).lower()
    return "not found" in msg or "does not exist" in msg or "no such file" in msg


def _is_network_error(e: BaseException) -> bool:
    for exc in _chain(e):
        if isinstance(exc, (socket.timeout, TimeoutError, ConnectionError, requests.ConnectionError, requests.Timeout)):
            return True
        if isinstance(exc, OSError) and exc.errno in (
            errno.ECONNREFUSED,
            errno.ETIMEDOUT,
            errno.EHOSTUNREACH,
            errno.ENETUNREACH,
            errno.ECONNRESET,
        ):
            return True
    msg = str(e).lower()
    needles = [
        "timed out",
        "connection refused",
        "connection reset",
        "name or service not known",
        "temporary failure in name resolution",
        "certificate verify failed",
        "fingerprints did not match",
    ]
    return any(n in msg for n in needles)


def _is_local_io_error(e: BaseException) -> bool:
    return isinstance(e, OSError) and e.errno in (
        errno.EACCES,
        errno.EPERM,
        errno.ENOSPC,
        errno.EROFS,
        errno.EDQUOT,
        errno.ENOENT,
        errno.EISDIR,
    )


def classify_exit_code(e: BaseException) -> GuestExitCode:
    if isinstance(e, KeyboardInterrupt):
        return GuestExitCode.INTERRUPTED

    if isinstance(e, GuestOpsError) and e.code == GuestExitCode.USAGE:
        return GuestExitCode.USAGE
    if isinstance(e, ValueError):
        return GuestExitCode.USAGE

    faults = _fault_names(e)
    if faults & _AUTH_FAULTS:
        return GuestExitCode.AUTH
    if faults & _NOT_FOUND_FAULTS:
        return GuestExitCode.NOT_FOUND
    if faults & _UNAVAILABLE_FAULTS:
        return GuestExitCode.GUEST_UNAVAILABLE

    if isinstance(e, TransferError):
        return GuestExitCode.NETWORK if _is_network_error(e) else GuestExitCode.TRANSFER

    if isinstance(e, VMwareError):
        if _is_auth_error(e):
            return GuestExitCode.AUTH
        if _is_network_error(e):
            return GuestExitCode.NETWORK
        if _is_not_found_error(e):
            return GuestExitCode.NOT_FOUND
        return GuestExitCode.VSPHERE_API

    if isinstance(e, Fatal):
        return GuestExitCode.UNKNOWN

    if _is_local_io_error(e):
        return GuestExitCode.LOCAL_IO
    if _is_network_error(e):
        return GuestExitCode.NETWORK

    return GuestExitCode.UNKNOWN
