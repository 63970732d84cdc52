# SPDX-License-Identifier: LGPL-3.0-or-later
# guestops/vmware/guest/__init__.py
"""Guest OS file operations (vim.vm.guest.FileManager)."""

from .builders import name_password_auth, posix_attributes, windows_attributes
from .file_manager import GuestFileManager
from .transfer import GuestTransfer

__all__ = [
    "GuestFileManager",
    "GuestTransfer",
    "name_password_auth",
    "posix_attributes",
    "windows_attributes",
]
