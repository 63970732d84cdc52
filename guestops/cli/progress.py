# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/cli/progress.py
"""Rich progress bar for transfers (TTY only)."""
from __future__ import annotations

import sys
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from ..core.logger import is_tty

ProgressFn = Callable[[int, int], None]


@contextmanager
def transfer_progress(description: str, *, enabled: Optional[bool] = None) -> Iterator[Optional[ProgressFn]]:
    """
    Yield a ``(done, total)`` callback driving a progress bar on stderr, or
    None when stderr is not a terminal.
    """
    if enabled is None:
        enabled = is_tty(sys.stderr)
    if not enabled:
        yield None
        return

    progress = Progress(
        SpinnerColumn(style="bright_green"),
        TextColumn("[progress.description]{task.description}", style="bold cyan"),
        BarColumn(complete_style="bright_blue", finished_style="bright_green"),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=Console(stderr=True),
        transient=False,
    )
    task_id = progress.add_task(description, total=None)

    def update(done: int, total: int) -> None:
        progress.update(task_id, completed=done, total=total if total > 0 else None)

    with progress:
        yield update
