# SPDX-License-Identifier: LGPL-3.0-or-later
# guestops/vmware/clients/__init__.py
"""
VMware API client modules.

- client: VMwareClient (connection, thumbprint registry, inventory lookup)
"""

from .client import VMwareClient

__all__ = ["VMwareClient"]
