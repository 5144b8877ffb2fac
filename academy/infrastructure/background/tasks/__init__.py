# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for Academy.

Usage:
    from academy.infrastructure.background.tasks import recalculate_batch_progress

    recalculate_batch_progress.send(batch_id)

Running Workers:
    dramatiq academy.infrastructure.background.tasks --processes 2 --threads 4
"""

from academy.infrastructure.background.tasks.base import run_async, worker_session
from academy.infrastructure.background.tasks.maintenance import (
    cleanup_expired_tokens,
    close_stale_doubts,
    get_maintenance_actors,
    recalculate_active_batches,
    recalculate_batch_progress,
)

__all__ = [
    "cleanup_expired_tokens",
    "close_stale_doubts",
    "recalculate_batch_progress",
    "recalculate_active_batches",
    "get_maintenance_actors",
    "run_async",
    "worker_session",
]
