# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/vmware/__init__.py
"""vSphere integration: client, property retrieval and guest file operations."""

from .clients.client import VMwareClient
from .guest.file_manager import GuestFileManager
from .guest.transfer import GuestTransfer

__all__ = ["VMwareClient", "GuestFileManager", "GuestTransfer"]
