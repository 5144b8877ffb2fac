# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Doubt domain: housekeeping for question threads."""

from academy.domains.doubt.service import DoubtService

__all__ = ["DoubtService"]
