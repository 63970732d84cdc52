# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/vmware/guest/builders.py
"""Builders for guest credentials and file attribute objects."""
from __future__ import annotations

import datetime as _dt
from typing import Any, Dict, Optional, Union

from pyVmomi import vim

_POSIX_ATTRS = {
    "permissions": "permissions",
    "owner_id": "ownerId",
    "group_id": "groupId",
    "access_time": "accessTime",
    "modification_time": "modificationTime",
}
_WINDOWS_ATTRS = {
    "hidden": "hidden",
    "read_only": "readOnly",
    "access_time": "accessTime",
    "modification_time": "modificationTime",
    "create_time": "createTime",
}


def name_password_auth(username: str, password: str, *, interactive_session: bool = False) -> Any:
    return vim.vm.guest.NamePasswordAuthentication(
        username=username,
        password=password,
        interactiveSession=interactive_session,
    )


def parse_mode(mode: Union[str, int]) -> int:
    """
    Octal permission string to int.

        >>> parse_mode("0644")
        420
        >>> parse_mode("755")
        493
    """
    if isinstance(mode, int):
        value = mode
    else:
        s = str(mode).strip()
        if s.lower().startswith("0o"):
            s = s[2:]
        try:
            value = int(s, 8)
        except ValueError:
            raise ValueError(f"invalid octal mode: {mode!r}") from None
    if not 0 <= value <= 0o7777:
        raise ValueError(f"mode out of range: {mode!r}")
    return value


def _fill(obj: Any, mapping: Dict[str, str], values: Dict[str, Any]) -> Any:
    for key, attr in mapping.items():
        v = values.get(key)
        if v is not None:
            setattr(obj, attr, v)
    return obj


def posix_attributes(
    *,
    permissions: Optional[Union[str, int]] = None,
    owner_id: Optional[int] = None,
    group_id: Optional[int] = None,
    access_time: Optional[_dt.datetime] = None,
    modification_time: Optional[_dt.datetime] = None,
) -> Any:
    """PosixFileAttributes with only the given fields set; unset fields are left alone by the guest."""
    return _fill(
        vim.vm.guest.FileManager.PosixFileAttributes(),
        _POSIX_ATTRS,
        {
            "permissions": parse_mode(permissions) if permissions is not None else None,
            "owner_id": owner_id,
            "group_id": group_id,
            "access_time": access_time,
            "modification_time": modification_time,
        },
    )


def windows_attributes(
    *,
    hidden: Optional[bool] = None,
    read_only: Optional[bool] = None,
    access_time: Optional[_dt.datetime] = None,
    modification_time: Optional[_dt.datetime] = None,
    create_time: Optional[_dt.datetime] = None,
) -> Any:
    return _fill(
        vim.vm.guest.FileManager.WindowsFileAttributes(),
        _WINDOWS_ATTRS,
        {
            "hidden": hidden,
            "read_only": read_only,
            "access_time": access_time,
            "modification_time": modification_time,
            "create_time": create_time,
        },
    )


def describe_file(info: Any) -> Dict[str, Any]:
    """Flatten a ``FileManager.FileInfo`` into a plain dict for display."""
    attrs = getattr(info, "attributes", None)
    rec: Dict[str, Any] = {
        "path": getattr(info, "path", None),
        "type": getattr(info, "type", None),
        "size": int(getattr(info, "size", 0) or 0),
    }
    mtime = getattr(attrs, "modificationTime", None)
    if mtime is not None:
        rec["mtime"] = mtime.isoformat() if hasattr(mtime, "isoformat") else str(mtime)
    perm = getattr(attrs, "permissions", None)
    if perm is not None:
        rec["mode"] = f"{int(perm):04o}"
    for src, dst in (("ownerId", "uid"), ("groupId", "gid"), ("hidden", "hidden"), ("readOnly", "readonly")):
        v = getattr(attrs, src, None)
        if v is not None:
            rec[dst] = v
    symlink = getattr(attrs, "symlinkTarget", None)
    if symlink:
        rec["symlink"] = symlink
    return rec
