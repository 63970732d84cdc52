# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/config/config_loader.py
"""
YAML/JSON configuration files.

Several files may be given; they are merged in order (later wins, nested
mappings merged key by key) and the result becomes the argparse defaults, so
anything on the command line still overrides it.
"""
from __future__ import annotations

import argparse
import glob
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence

import yaml

from ..core.exceptions import Fatal

CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _normalize_keys(d: Dict[str, Any]) -> Dict[str, Any]:
    # `vc-user` and `vc_user` mean the same thing.
    return {str(k).replace("-", "_"): (_normalize_keys(v) if isinstance(v, dict) else v) for k, v in d.items()}


class Config:
    @staticmethod
    def expand_configs(logger: logging.Logger, paths: Sequence[str]) -> List[Path]:
        """
        Resolve config arguments to files: globs are expanded, directories
        contribute their *.yaml/*.yml/*.json files in name order.
        """
        out: List[Path] = []
        for raw in paths:
            pattern = str(Path(raw).expanduser())
            matches = sorted(glob.glob(pattern)) if glob.has_magic(pattern) else [pattern]
            if not matches:
                raise Fatal(code=2, msg=f"Config pattern matched nothing: {raw}")
            for m in matches:
                p = Path(m)
                if p.is_dir():
                    found = sorted(x for x in p.iterdir() if x.suffix.lower() in CONFIG_SUFFIXES and x.is_file())
                    logger.debug("Config dir %s: %d file(s)", p, len(found))
                    out.extend(found)
                elif p.is_file():
                    out.append(p)
                else:
                    raise Fatal(code=2, msg=f"Config file not found: {p}")
        return out

    @staticmethod
    def load_file(logger: logging.Logger, path: Path) -> Dict[str, Any]:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise Fatal(code=2, msg=f"Cannot read config {path}: {e}", cause=e) from e
        try:
            data = json.loads(text) if Path(path).suffix.lower() == ".json" else yaml.safe_load(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise Fatal(code=2, msg=f"Invalid config {path}: {e}", cause=e) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise Fatal(code=2, msg=f"Config {path} must be a mapping, got {type(data).__name__}")
        logger.debug("Loaded config %s (%d keys)", path, len(data))
        return _normalize_keys(data)

    @staticmethod
    def load_many(logger: logging.Logger, paths: Sequence[Path]) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        for p in paths:
            conf = deep_merge(conf, Config.load_file(logger, p))
        return conf

    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> None:
        """Set parser defaults for config keys that name a parser destination."""
        known = {a.dest for a in parser._actions}
        defaults = {k: v for k, v in conf.items() if k in known}
        unknown = sorted(k for k in conf if k not in known)
        if unknown:
            logger.debug("Config keys without a matching option (ignored): %s", ", ".join(unknown))
        if defaults:
            parser.set_defaults(**defaults)
