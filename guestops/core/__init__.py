# SPDX-License-Identifier: LGPL-3.0-or-later
# guestops/core/__init__.py
from .exceptions import (
    Fatal,
    GuestOperationError,
    GuestOpsError,
    TransferError,
    TransferURLError,
    VMwareError,
)

__all__ = [
    "Fatal",
    "GuestOperationError",
    "GuestOpsError",
    "TransferError",
    "TransferURLError",
    "VMwareError",
]
