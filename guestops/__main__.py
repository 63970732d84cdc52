# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/__main__.py
from __future__ import annotations

import sys
import traceback
from typing import Optional, Sequence

from .cli.args import parse_args_with_config
from .cli.commands import run
from .core.exceptions import Fatal, format_exception_for_cli
from .vmware.errors import GuestExitCode, classify_exit_code


def main(argv: Optional[Sequence[str]] = None) -> None:
    logger = None

    # Phase 1: parse (Fatal can happen here)
    try:
        args, _conf, logger = parse_args_with_config(argv)
    except Fatal as e:
        print(f"💥 ERROR    {e}", file=sys.stderr)
        raise SystemExit(int(classify_exit_code(e)))
    except KeyboardInterrupt:
        raise SystemExit(int(GuestExitCode.INTERRUPTED))

    # Phase 2: run the command
    try:
        rc = run(args, logger)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C).")
        rc = int(GuestExitCode.INTERRUPTED)
    except Exception as e:
        # Unexpected or not, every failure leaves one line on stderr and a mapped exit code.
        logger.error("💥 %s", format_exception_for_cli(e, verbose=args.verbose))
        logger.debug(traceback.format_exc())
        rc = int(classify_exit_code(e))

    raise SystemExit(rc)


if __name__ == "__main__":
    main()
