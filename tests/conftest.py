# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- An in-memory SQLite database with every table created
- Settings objects with fast bcrypt rounds
- Factories for users, courses, batches and enrollments
"""

import os
import re

os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("AUTH_BCRYPT_ROUNDS", "4")

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from typing import Any, Awaitable

import pytest
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from academy.core.config.settings import (
    AuthSettings,
    CacheSettings,
    JWTSettings,
    PaymentSettings,
    VideoSettings,
)
from academy.domains.auth.jwt import JWTManager
from academy.infrastructure.database.models import (
    Base,
    Batch,
    Course,
    Enrollment,
    EnrollmentStatus,
    PaymentStatus,
    User,
    UserRole,
)
from academy.utils.datetime import utc_now


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory database for one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(sessionmaker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for one test."""
    async with sessionmaker() as session:
        yield session


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def jwt_settings() -> JWTSettings:
    return JWTSettings(
        secret_key=SecretStr("test-secret-key-for-jwt-testing"),
        refresh_secret_key=SecretStr("test-refresh-secret-for-jwt-testing"),
        access_token_expire_minutes=15,
        refresh_token_expire_days=7,
        max_refresh_tokens_per_user=3,
    )


@pytest.fixture
def jwt_manager(jwt_settings: JWTSettings) -> JWTManager:
    return JWTManager(jwt_settings)


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(max_login_attempts=3, lockout_minutes=30, bcrypt_rounds=4)


@pytest.fixture
def cache_settings() -> CacheSettings:
    return CacheSettings(short_ttl_seconds=300, long_ttl_seconds=3600)


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return PaymentSettings(key_secret=SecretStr("test-payment-secret"), currency="INR", emi_interval_days=30)


@pytest.fixture
def video_settings() -> VideoSettings:
    return VideoSettings(
        provider="inhouse",
        inhouse_base_url="https://meet.test",
        inhouse_secret=SecretStr("test-video-secret"),
    )


# =============================================================================
# Clock
# =============================================================================


class FrozenClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# =============================================================================
# Model Factories
# =============================================================================


@pytest.fixture
def make_user(db: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory for persisted users."""
    counter = {"n": 0}

    async def _make(role: str = UserRole.STUDENT.value, **kwargs: Any) -> User:
        counter["n"] += 1
        user = User(
            email=kwargs.pop("email", f"{role}{counter['n']}@academy.test"),
            full_name=kwargs.pop("full_name", f"{role.title()} {counter['n']}"),
            role=role,
            is_active=kwargs.pop("is_active", True),
            login_attempts=kwargs.pop("login_attempts", 0),
            **kwargs,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_course(db: AsyncSession) -> Callable[..., Awaitable[Course]]:
    async def _make(**kwargs: Any) -> Course:
        course = Course(
            title=kwargs.pop("title", "Python Foundations"),
            fee=kwargs.pop("fee", 12000.0),
            emi_amount=kwargs.pop("emi_amount", 4000.0),
            duration_weeks=kwargs.pop("duration_weeks", 12),
            is_published=True,
            **kwargs,
        )
        db.add(course)
        await db.commit()
        return course

    return _make


@pytest.fixture
def make_batch(db: AsyncSession) -> Callable[..., Awaitable[Batch]]:
    """Factory for batches; upcoming by default."""

    async def _make(course: Course, instructor: User, **kwargs: Any) -> Batch:
        now = utc_now()
        batch = Batch(
            course_id=course.id,
            instructor_id=instructor.id,
            name=kwargs.pop("name", "Evening Batch"),
            start_date=kwargs.pop("start_date", now + timedelta(days=7)),
            end_date=kwargs.pop("end_date", now + timedelta(days=90)),
            max_students=kwargs.pop("max_students", 30),
            current_students=kwargs.pop("current_students", 0),
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db.add(batch)
        await db.commit()
        return batch

    return _make


@pytest.fixture
def make_enrollment(db: AsyncSession) -> Callable[..., Awaitable[Enrollment]]:
    """Factory for enrollments; active and fully paid by default."""

    async def _make(student: User, batch: Batch, **kwargs: Any) -> Enrollment:
        enrollment = Enrollment(
            student_id=student.id,
            batch_id=batch.id,
            course_id=batch.course_id,
            payment_method=kwargs.pop("payment_method", "full"),
            total_amount=kwargs.pop("total_amount", 12000.0),
            paid_amount=kwargs.pop("paid_amount", 12000.0),
            status=kwargs.pop("status", EnrollmentStatus.ACTIVE.value),
            payment_status=kwargs.pop("payment_status", PaymentStatus.PAID.value),
            access_revoked=kwargs.pop("access_revoked", False),
            enrolled_at=kwargs.pop("enrolled_at", utc_now()),
            **kwargs,
        )
        db.add(enrollment)
        await db.commit()
        return enrollment

    return _make


@pytest.fixture
async def running_batch(make_user, make_course, make_batch) -> Batch:
    """A batch that started a week ago, with its instructor and course."""
    instructor = await make_user(UserRole.INSTRUCTOR.value)
    course = await make_course()
    now = utc_now()
    return await make_batch(
        course,
        instructor,
        name="Running Batch",
        start_date=now - timedelta(days=7),
        end_date=now + timedelta(days=60),
    )


# =============================================================================
# Cache
# =============================================================================


class MemoryCache:
    """Dict-backed cache store that records the TTL of every write."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> Any | None:
        return self.data.get(key)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.data[key] = value
        self.ttls[key] = ttl_seconds

    async def invalidate(self, key: str) -> int:
        self.ttls.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    async def invalidate_pattern(self, pattern: str) -> int:
        regex = re.compile(pattern)
        keys = [key for key in self.data if regex.search(key)]
        for key in keys:
            await self.invalidate(key)
        return len(keys)


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()
