# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
"""
Retry with exponential backoff.

Used around out-of-band guest transfers, where an ESXi host can drop a
connection or answer 5xx while the guest tools are busy.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar, Union

T = TypeVar("T")

ExcTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


def backoff_delay(attempt: int, base_backoff_s: float, max_backoff_s: float, jitter_s: float) -> float:
    """Sleep time before retry number ``attempt`` (1-based)."""
    delay = min(base_backoff_s * (2 ** (attempt - 1)), max_backoff_s)
    if jitter_s > 0:
        delay += random.uniform(0, jitter_s)
    return delay


def retry_operation(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_backoff_s: float = 2.0,
    max_backoff_s: float = 60.0,
    jitter_s: float = 1.0,
    exceptions: ExcTypes = Exception,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    operation_name: str = "operation",
    logger: Optional[logging.Logger] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """
    Call ``operation`` until it succeeds or ``max_attempts`` is used up.

    Only exceptions matching ``exceptions`` (and accepted by ``should_retry``,
    when given) are retried; anything else propagates immediately. The last
    exception is re-raised once attempts are exhausted.

    Example:
        body = retry_operation(
            lambda: session.get(url).content,
            max_attempts=4,
            operation_name="download",
            logger=log,
        )
    """
    attempts = max(1, int(max_attempts))
    attempt = 1
    while True:
        try:
            return operation()
        except exceptions as e:
            if attempt >= attempts or (should_retry is not None and not should_retry(e)):
                if logger and attempt > 1:
                    logger.error("%s failed after %d attempts: %s", operation_name, attempt, e)
                raise

            delay = backoff_delay(attempt, base_backoff_s, max_backoff_s, jitter_s)
            if logger:
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.2fs...",
                    operation_name,
                    attempt,
                    attempts,
                    e,
                    delay,
                )
            (sleep or time.sleep)(delay)
            attempt += 1
