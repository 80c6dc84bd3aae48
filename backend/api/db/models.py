"""SQLAlchemy 2.0 async ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class User(Base):
    """A competition participant."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    visits: Mapped[list[VisitData]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class VisitData(Base):
    """A submitted hiking visit: route, places, points and review state."""

    __tablename__ = "visit_data"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    route_title: Mapped[str] = mapped_column(String, default="Untitled Route")
    route_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Legacy comma-separated place names
    visited_places: Mapped[str] = mapped_column(Text, default="")
    visit_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String, default="DRAFT")  # VisitState
    activity_type: Mapped[str | None] = mapped_column(String, nullable=True)
    route: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    places: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    extra_points: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    extra_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    points: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped[User | None] = relationship(back_populates="visits")

    __table_args__ = (
        Index("ix_visit_data_user_state", "user_id", "state"),
        Index("ix_visit_data_year_state", "year", "state"),
    )


class ScoringConfigDB(Base):
    """Administrator-managed scoring ruleset; at most one row is active."""

    __tablename__ = "scoring_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    points_per_km: Mapped[float] = mapped_column(Float, nullable=False)
    min_distance_km: Mapped[float] = mapped_column(Float, nullable=False)
    require_at_least_one_place: Mapped[bool] = mapped_column(Boolean, default=True)
    place_type_points: Mapped[dict] = mapped_column(JSONB, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class MonthlyTheme(Base):
    """Keyword theme for one calendar month."""

    __tablename__ = "monthly_themes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, default="")
    keywords: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (UniqueConstraint("year", "month", name="uq_monthly_theme_year_month"),)


class StrataCategory(Base):
    """A Strakatá route category with a once-a-month usage limit."""

    __tablename__ = "strata_categories"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    order: Mapped[int] = mapped_column(Integer, default=0)


class UserCategoryUsage(Base):
    """Ledger: a user completed a category in a month."""

    __tablename__ = "user_category_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[str] = mapped_column(
        String, ForeignKey("strata_categories.id", ondelete="CASCADE"), nullable=False
    )
    month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    points: Mapped[int] = mapped_column(Integer, default=1)
    visit_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "category_id", "month", name="uq_category_usage_user_month"),
        Index("ix_category_usage_category_month", "category_id", "month"),
    )


class FreeCategoryUsageDB(Base):
    """Ledger: a user spent the weekly free-category submission."""

    __tablename__ = "free_category_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    iso_year: Mapped[int] = mapped_column(Integer, nullable=False)
    iso_week: Mapped[int] = mapped_column(Integer, nullable=False)
    visit_id: Mapped[str | None] = mapped_column(String, nullable=True)
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "iso_year", "iso_week", name="uq_free_category_user_week"),
    )
