# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for Academy.

This package contains domain services that encapsulate business logic.
Each domain module provides services that orchestrate operations
across the database, the cache layer and external providers.

Domains:
    auth: Token lifecycle, login and password management.
    progress: Per-student progress aggregation and risk assessment.
    analytics: Cached system, batch, course and payment reports.
    enrollment: Batch enrollment and payment confirmation.
    doubt: Doubt housekeeping.
    live_session: Live session scheduling and attendance.
"""
