# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# guestops/__init__.py
"""
guestops - file operations inside vSphere guests

Usage as a library:

    from guestops import VMwareClient, GuestTransfer
    from guestops.vmware.guest import name_password_auth

    with VMwareClient(logger, "vcenter.example.com", user, password) as client:
        vm = client.find_vm("web01")
        fm = client.file_manager_for(vm)
        auth = name_password_auth("root", "secret")
        fm.make_directory(auth, "/srv/drop", create_parent_directories=True)
        GuestTransfer(fm).upload(auth, "app.tar.gz", "/srv/drop/app.tar.gz")
"""

__version__ = "0.1.0"

from .vmware import GuestFileManager, GuestTransfer, VMwareClient

__all__ = [
    "__version__",
    "GuestFileManager",
    "GuestTransfer",
    "VMwareClient",
]
