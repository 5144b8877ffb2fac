"""Academy LMS Backend.

Learning-management backend for course batches, enrollment and payments,
progress and risk analytics, and JWT authentication with device tracking.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
