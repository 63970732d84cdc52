# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/cli/commands.py
"""Command implementations for the guestops CLI."""
from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Callable, Dict

from ..core.logger import Log
from ..vmware.clients.client import VMwareClient
from ..vmware.guest.builders import describe_file, name_password_auth, posix_attributes
from ..vmware.guest.file_manager import GuestFileManager
from ..vmware.guest.transfer import GuestTransfer
from .progress import transfer_progress


def _cmd_ls(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    records = [describe_file(f) for f in fm.iter_files(auth, args.path, match_pattern=args.pattern)]
    if args.json:
        print(json.dumps(records, indent=2, default=str))
    elif args.long:
        for r in records:
            print(
                "\t".join(
                    [
                        str(r.get("type") or "-"),
                        r.get("mode", "----"),
                        str(r["size"]),
                        str(r.get("mtime", "-")),
                        str(r["path"]) + (f" -> {r['symlink']}" if "symlink" in r else ""),
                    ]
                )
            )
    else:
        for r in records:
            print(r["path"])
    logger.debug("ls %s: %d entries", args.path, len(records))
    return 0


def _cmd_mkdir(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    fm.make_directory(auth, args.path, create_parent_directories=args.parents)
    Log.ok(logger, f"Created directory {args.path}")
    return 0


def _cmd_rmdir(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    fm.delete_directory(auth, args.path, recursive=args.recursive)
    Log.ok(logger, f"Deleted directory {args.path}")
    return 0


def _cmd_rm(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    fm.delete_file(auth, args.path)
    Log.ok(logger, f"Deleted {args.path}")
    return 0


def _cmd_mv(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    fm.move_file(auth, args.src, args.dst, overwrite=args.force)
    Log.ok(logger, f"Moved {args.src} -> {args.dst}")
    return 0


def _cmd_mvdir(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    fm.move_directory(auth, args.src, args.dst)
    Log.ok(logger, f"Moved directory {args.src} -> {args.dst}")
    return 0


def _cmd_mktemp(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    create = fm.create_temporary_directory if args.directory else fm.create_temporary_file
    print(create(auth, args.prefix, args.suffix, args.dir))
    return 0


def _cmd_chmod(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    attrs = posix_attributes(permissions=args.mode, owner_id=args.uid, group_id=args.gid)
    fm.change_file_attributes(auth, args.path, attrs)
    Log.ok(logger, f"Changed attributes of {args.path}")
    return 0


def _transfer(args: argparse.Namespace, fm: GuestFileManager, logger: logging.Logger) -> GuestTransfer:
    return GuestTransfer(
        fm,
        timeout=args.transfer_timeout,
        retries=args.transfer_retries,
        logger=logger,
    )


def _cmd_upload(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    attrs = posix_attributes(permissions=args.mode) if args.mode else None
    with transfer_progress(f"⬆ {args.guest}") as progress:
        _transfer(args, fm, logger).upload(
            auth, args.local, args.guest, overwrite=args.force, attributes=attrs, progress=progress
        )
    Log.ok(logger, f"Uploaded {args.local} -> {args.guest}")
    return 0


def _cmd_download(args: argparse.Namespace, fm: GuestFileManager, auth: Any, logger: logging.Logger) -> int:
    with transfer_progress(f"⬇ {args.guest}") as progress:
        dst = _transfer(args, fm, logger).download(auth, args.guest, args.local, progress=progress)
    Log.ok(logger, f"Downloaded {args.guest} -> {dst}")
    return 0


CommandFn = Callable[[argparse.Namespace, GuestFileManager, Any, logging.Logger], int]

COMMANDS: Dict[str, CommandFn] = {
    "ls": _cmd_ls,
    "mkdir": _cmd_mkdir,
    "rmdir": _cmd_rmdir,
    "rm": _cmd_rm,
    "mv": _cmd_mv,
    "mvdir": _cmd_mvdir,
    "mktemp": _cmd_mktemp,
    "chmod": _cmd_chmod,
    "upload": _cmd_upload,
    "download": _cmd_download,
}


def run_command(args: argparse.Namespace, fm: GuestFileManager, logger: logging.Logger) -> int:
    auth = name_password_auth(args.guest_user, args.guest_password)
    return COMMANDS[args.cmd](args, fm, auth, logger)


def run(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Connect, locate the VM and dispatch ``args.cmd``."""
    client = VMwareClient.from_config(logger, vars(args))
    with client:
        vm = client.find_vm(args.vm)
        fm = client.file_manager_for(vm, prefer_management_ip=args.prefer_management_ip)
        return run_command(args, fm, logger)
