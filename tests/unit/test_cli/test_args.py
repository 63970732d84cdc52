# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import json
import logging

import pytest

from guestops.cli.args import build_parser, parse_args_with_config
from guestops.core.exceptions import Fatal

LOG = logging.getLogger("guestops.test.args")

BASE = [
    "--vcenter", "vc.example.com",
    "--vc-user", "administrator@vsphere.local",
    "--vc-password", "vcpw",
    "--vm", "web01",
    "--guest-user", "root",
    "--guest-password", "guestpw",
]


@pytest.mark.unit
class TestParse:
    def test_ls(self):
        args, conf, _ = parse_args_with_config(BASE + ["ls", "/var/log", "-l"], logger=LOG)

        assert conf == {}
        assert args.cmd == "ls"
        assert args.path == "/var/log"
        assert args.long is True
        assert args.vc_port == 443
        assert args.prefer_management_ip is None
        assert args.transfer_retries == 0

    def test_prefer_management_ip_flag(self):
        args, _, _ = parse_args_with_config(BASE + ["--no-prefer-management-ip", "rm", "/tmp/x"], logger=LOG)
        assert args.prefer_management_ip is False

    @pytest.mark.parametrize(
        "cmd,attrs",
        [
            (["mkdir", "-p", "/opt/a/b"], {"path": "/opt/a/b", "parents": True}),
            (["rmdir", "-r", "/opt/a"], {"path": "/opt/a", "recursive": True}),
            (["mv", "-f", "/a", "/b"], {"src": "/a", "dst": "/b", "force": True}),
            (["mvdir", "/a", "/b"], {"src": "/a", "dst": "/b"}),
            (["mktemp", "-d", "--dir", "/var/tmp"], {"directory": True, "prefix": "guestops", "dir": "/var/tmp"}),
            (["chmod", "0600", "/etc/x", "--uid", "0"], {"mode": "0600", "uid": 0, "gid": None}),
            (["upload", "a.bin", "/tmp/a.bin", "--mode", "0755"], {"local": "a.bin", "force": False, "mode": "0755"}),
            (["download", "/etc/hosts", "."], {"guest": "/etc/hosts", "local": "."}),
        ],
    )
    def test_commands(self, cmd, attrs):
        args, _, _ = parse_args_with_config(BASE + cmd, logger=LOG)
        assert args.cmd == cmd[0]
        for k, v in attrs.items():
            assert getattr(args, k) == v

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(BASE)


@pytest.mark.unit
class TestValidation:
    def test_missing_options_listed(self):
        with pytest.raises(Fatal) as ei:
            parse_args_with_config(["--vcenter", "vc", "ls", "/"], logger=LOG)
        assert ei.value.code == 2
        for flag in ("--vc-user", "--vm", "--guest-user", "--guest-password/--guest-password-env"):
            assert flag in str(ei.value)
        assert "--vcenter," not in str(ei.value)

    def test_negative_retries(self):
        with pytest.raises(Fatal):
            parse_args_with_config(BASE + ["--transfer-retries", "-1", "ls", "/"], logger=LOG)


@pytest.mark.security
class TestSecrets:
    def test_password_from_env(self, monkeypatch):
        monkeypatch.setenv("GOPS_TEST_GUEST_PW", "from-env")
        argv = [a for a in BASE if a not in ("--guest-password", "guestpw")]
        args, _, _ = parse_args_with_config(argv + ["--guest-password-env", "GOPS_TEST_GUEST_PW", "ls", "/"], logger=LOG)
        assert args.guest_password == "from-env"

    def test_direct_value_beats_env(self, monkeypatch):
        monkeypatch.setenv("GOPS_TEST_GUEST_PW", "from-env")
        args, _, _ = parse_args_with_config(BASE + ["--guest-password-env", "GOPS_TEST_GUEST_PW", "ls", "/"], logger=LOG)
        assert args.guest_password == "guestpw"

    def test_dump_config_masks_secrets(self, tmp_path, capsys):
        cfg = tmp_path / "guestops.yaml"
        cfg.write_text("vcenter: vc\nvc_password: hunter2\nguest_password: s3cret\n", encoding="utf-8")

        with pytest.raises(SystemExit) as ei:
            parse_args_with_config(["--config", str(cfg), "--dump-config", "ls", "/"], logger=LOG)

        assert ei.value.code == 0
        dumped = json.loads(capsys.readouterr().out)
        assert dumped == {"vcenter": "vc", "vc_password": "***REDACTED***", "guest_password": "***REDACTED***"}


@pytest.mark.unit
class TestConfigFiles:
    def test_config_supplies_defaults(self, tmp_path):
        cfg = tmp_path / "guestops.yaml"
        cfg.write_text(
            "vcenter: vc.lab\nvc-user: admin\nvc_password: pw\nvm: db01\n"
            "guest_user: root\nguest_password: pw\ntransfer_retries: 2\nprefer_management_ip: false\n",
            encoding="utf-8",
        )

        args, conf, _ = parse_args_with_config(["--config", str(cfg), "--vm", "web01", "ls", "/"], logger=LOG)

        assert conf["vm"] == "db01"
        assert args.vm == "web01"
        assert args.vcenter == "vc.lab"
        assert args.vc_user == "admin"
        assert args.transfer_retries == 2
        assert args.prefer_management_ip is False
