# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for Academy.

- database: SQLAlchemy async engine, sessions and models
- cache: TTL cache stores (database and Redis backed)
- background: Dramatiq actors and the APScheduler maintenance scheduler
- integrations: Email, payment gateway and video provider clients
"""
