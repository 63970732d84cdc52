# SPDX-License-Identifier: LGPL-3.0-or-later
# guestops/cli/__init__.py
"""Command line front end."""
