# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/cli/args.py
from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, Dict, Optional, Sequence, Tuple

from .. import __version__
from ..config.config_loader import Config
from ..core.exceptions import Fatal, redact
from ..core.logger import Log, c

_LOGGING_KEYS = ("verbose", "quiet", "log_file", "json_logs")

YAML_EXAMPLE = """\
# guestops.yaml
vcenter: vcenter.example.com
vc_user: administrator@vsphere.local
vc_password_env: VC_PASSWORD
vm: web01
guest_user: root
guest_password_env: GUEST_PASSWORD
transfer_retries: 2
"""


class HelpFormatter(argparse.RawDescriptionHelpFormatter, argparse.ArgumentDefaultsHelpFormatter):
    """Combines raw description formatting with default value display in help."""


def _require(v: Any) -> bool:
    """True if v is meaningfully present (treats empty/whitespace-only strings as missing)."""
    if v is None:
        return False
    if isinstance(v, str):
        return v.strip() != ""
    return True


def _resolve_secret(args: argparse.Namespace, value_key: str, env_key: str) -> Optional[str]:
    """
    Secret from the direct value (CLI or config), else from the env var it names.
    Config values are already parser defaults, so CLI beats config for both.
    """
    direct = getattr(args, value_key, None)
    if _require(direct):
        return str(direct)
    envname = getattr(args, env_key, None)
    if _require(envname):
        return os.environ.get(str(envname))
    return None


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML/JSON config file (repeatable; later overrides earlier).",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged config (secrets masked) and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -vv debug, -vvv trace")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Less output: -q warnings, -qq errors")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit NDJSON logs.")


def _add_vsphere_knobs(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("vSphere connection")
    g.add_argument("--vcenter", default=None, help="vCenter/ESXi hostname or IP")
    g.add_argument("--vc-user", dest="vc_user", default=None, help="vCenter username")
    g.add_argument("--vc-password", dest="vc_password", default=None, help="vCenter password (or use --vc-password-env)")
    g.add_argument("--vc-password-env", dest="vc_password_env", default=None, help="Env var containing vCenter password")
    g.add_argument("--vc-port", dest="vc_port", type=int, default=443, help="vCenter HTTPS port")
    g.add_argument("--vc-insecure", dest="vc_insecure", action="store_true", help="Disable TLS verification")
    g.add_argument("--vc-thumbprint", dest="vc_thumbprint", default=None, help="Expected SHA-1 TLS thumbprint (AA:BB:...)")
    g.add_argument("--vc-timeout", dest="vc_timeout", type=float, default=None, help="Socket timeout in seconds")


def _add_guest_knobs(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group("Guest")
    g.add_argument("--vm", default=None, help="VM name, managed object id (vm-42) or UUID")
    g.add_argument("--guest-user", dest="guest_user", default=None, help="Guest OS username")
    g.add_argument("--guest-password", dest="guest_password", default=None, help="Guest OS password")
    g.add_argument("--guest-password-env", dest="guest_password_env", default=None, help="Env var containing guest password")
    g.add_argument(
        "--prefer-management-ip",
        dest="prefer_management_ip",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Rewrite transfer URLs to the ESXi management IP (default: env GUESTOPS_USE_GUEST_TRANSFER_IP != false)",
    )
    g.add_argument("--transfer-retries", dest="transfer_retries", type=int, default=0, help="Retries for 5xx/connection errors")
    g.add_argument("--transfer-timeout", dest="transfer_timeout", type=float, default=None, help="HTTP timeout in seconds")


def _add_commands(p: argparse.ArgumentParser) -> None:
    sub = p.add_subparsers(dest="cmd", metavar="COMMAND")
    sub.required = True

    ls = sub.add_parser("ls", help="List a guest directory")
    ls.add_argument("path")
    ls.add_argument("--pattern", default=None, help="Regular expression the names must match")
    ls.add_argument("-l", "--long", action="store_true", help="Show type, size, mode and mtime")
    ls.add_argument("--json", action="store_true", help="Print JSON records")

    mkdir = sub.add_parser("mkdir", help="Create a guest directory")
    mkdir.add_argument("path")
    mkdir.add_argument("-p", "--parents", action="store_true", help="Create missing parents")

    rmdir = sub.add_parser("rmdir", help="Delete a guest directory")
    rmdir.add_argument("path")
    rmdir.add_argument("-r", "--recursive", action="store_true")

    rm = sub.add_parser("rm", help="Delete a guest file")
    rm.add_argument("path")

    mv = sub.add_parser("mv", help="Move/rename a guest file")
    mv.add_argument("src")
    mv.add_argument("dst")
    mv.add_argument("-f", "--force", action="store_true", help="Overwrite destination")

    mvdir = sub.add_parser("mvdir", help="Move/rename a guest directory")
    mvdir.add_argument("src")
    mvdir.add_argument("dst")

    mktemp = sub.add_parser("mktemp", help="Create a temporary guest file or directory")
    mktemp.add_argument("-d", "--directory", action="store_true")
    mktemp.add_argument("--prefix", default="guestops")
    mktemp.add_argument("--suffix", default="")
    mktemp.add_argument("--dir", dest="dir", default=None, help="Parent directory (default: guest temp dir)")

    chmod = sub.add_parser("chmod", help="Change POSIX mode/owner of a guest file")
    chmod.add_argument("mode", help="Octal mode, e.g. 0644")
    chmod.add_argument("path")
    chmod.add_argument("--uid", type=int, default=None)
    chmod.add_argument("--gid", type=int, default=None)

    upload = sub.add_parser("upload", help="Copy a local file into the guest")
    upload.add_argument("local")
    upload.add_argument("guest")
    upload.add_argument("-f", "--force", action="store_true", help="Overwrite existing guest file")
    upload.add_argument("--mode", default=None, help="Octal mode for the new file")

    download = sub.add_parser("download", help="Copy a guest file to the local machine")
    download.add_argument("guest")
    download.add_argument("local")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="guestops",
        description=c("guestops: file operations inside vSphere guests", "green", ["bold"]),
        formatter_class=HelpFormatter,
        epilog=c("YAML example:\n", "cyan", ["bold"]) + c(YAML_EXAMPLE, "cyan"),
    )
    _add_global_config_logging(p)
    _add_vsphere_knobs(p)
    _add_guest_knobs(p)
    _add_commands(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    # No abbreviations: `ls --json` must not turn on --json-logs.
    pre = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--json-logs", dest="json_logs", action="store_true")
    pre.add_argument("--dump-config", action="store_true")
    return pre


def validate_args(args: argparse.Namespace) -> None:
    """Resolve secrets in place and fail on anything still missing."""
    args.vc_password = _resolve_secret(args, "vc_password", "vc_password_env")
    args.guest_password = _resolve_secret(args, "guest_password", "guest_password_env")

    required = [
        ("vcenter", "--vcenter"),
        ("vc_user", "--vc-user"),
        ("vc_password", "--vc-password/--vc-password-env"),
        ("vm", "--vm"),
        ("guest_user", "--guest-user"),
        ("guest_password", "--guest-password/--guest-password-env"),
    ]
    missing = [flag for dest, flag in required if not _require(getattr(args, dest, None))]
    if missing:
        raise Fatal(code=2, msg=f"Missing required option(s): {', '.join(missing)} (flag or config key)")
    if args.transfer_retries < 0:
        raise Fatal(code=2, msg=f"--transfer-retries must be >= 0, got {args.transfer_retries}")


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Any = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], Any]:
    """
    Phase 0: parse only the flags needed to locate config/logging
    Phase 1: load+merge config files
    Phase 2: apply config as parser defaults
    Phase 3: full parse (CLI overrides config)
    Phase 4: resolve secrets and validate
    """
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = build_parser()
    args0, _rest = _build_preparser().parse_known_args(argv)

    own_logger = logger is None
    if own_logger:
        logger = Log.setup(args0.verbose, args0.log_file, quiet=args0.quiet, json_logs=args0.json_logs)

    conf: Dict[str, Any] = {}
    if args0.config:
        conf = Config.load_many(logger, Config.expand_configs(logger, args0.config))

    if own_logger and any(k in conf for k in _LOGGING_KEYS):
        # Logging knobs from config, unless given on the command line.
        logger = Log.setup(
            args0.verbose or int(conf.get("verbose") or 0),
            args0.log_file or conf.get("log_file"),
            quiet=args0.quiet or int(conf.get("quiet") or 0),
            json_logs=args0.json_logs or bool(conf.get("json_logs")),
        )

    if args0.dump_config:
        print(json.dumps(redact(conf), indent=2, sort_keys=True, default=str))
        raise SystemExit(0)

    Config.apply_as_defaults(logger, parser, conf)
    args = parser.parse_args(argv)
    validate_args(args)
    return args, conf, logger
