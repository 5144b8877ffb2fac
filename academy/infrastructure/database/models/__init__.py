# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for Academy.

Importing this package registers every table on Base.metadata.
"""

from academy.infrastructure.database.models.auth import (
    BlacklistEntry,
    BlacklistReason,
    RefreshTokenRecord,
    RevokedReason,
)
from academy.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    generate_uuid,
)
from academy.infrastructure.database.models.cache import CacheEntry, CacheType
from academy.infrastructure.database.models.catalog import Batch, Course
from academy.infrastructure.database.models.doubt import Doubt, DoubtStatus
from academy.infrastructure.database.models.enrollment import (
    Enrollment,
    EnrollmentStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    TransactionStatus,
)
from academy.infrastructure.database.models.learning import (
    Assignment,
    LearningMaterial,
    LiveSession,
    SessionAttendee,
    SessionStatus,
    Submission,
    SubmissionStatus,
    VideoProviderName,
)
from academy.infrastructure.database.models.progress import (
    AssignmentProgressStatus,
    AttendanceStatus,
    MaterialStatus,
    Progress,
)
from academy.infrastructure.database.models.user import User, UserRole

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "UTCDateTime",
    "generate_uuid",
    # Users & auth
    "User",
    "UserRole",
    "RefreshTokenRecord",
    "RevokedReason",
    "BlacklistEntry",
    "BlacklistReason",
    # Catalog
    "Course",
    "Batch",
    # Enrollment
    "Enrollment",
    "EnrollmentStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentType",
    "TransactionStatus",
    # Learning
    "LearningMaterial",
    "LiveSession",
    "SessionAttendee",
    "SessionStatus",
    "VideoProviderName",
    "Assignment",
    "Submission",
    "SubmissionStatus",
    # Doubts
    "Doubt",
    "DoubtStatus",
    # Progress
    "Progress",
    "MaterialStatus",
    "AttendanceStatus",
    "AssignmentProgressStatus",
    # Cache
    "CacheEntry",
    "CacheType",
]
