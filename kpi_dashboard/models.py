from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from kpi_dashboard.db import Base

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")

KPI_CATEGORIES = ("Operasyon", "Mutfak", "Müşteri Deneyimi", "Personel")
KPI_PERIODS = ("Günlük", "Haftalık", "Aylık", "Yıllık")
VERSION_STATUSES = ("draft", "published")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Kpi(Base):
    __tablename__ = "kpi"
    __table_args__ = (
        CheckConstraint(_in_list("category", KPI_CATEGORIES), name="kpi_category"),
        CheckConstraint(_in_list("period", KPI_PERIODS), name="kpi_period"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    target: Mapped[float] = mapped_column(Float, nullable=False)
    actual: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    period: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str | None] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class DailyReport(Base):
    __tablename__ = "daily_report"
    __table_args__ = (
        CheckConstraint("success_rate BETWEEN 0 AND 100", name="daily_report_success_rate"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    report_date: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSON_TYPE, nullable=False)
    total_kpis: Mapped[int] = mapped_column(Integer, nullable=False)
    successful_kpis: Mapped[int] = mapped_column(Integer, nullable=False)
    success_rate: Mapped[int] = mapped_column(Integer, nullable=False)


class CriticalOccasion(Base):
    __tablename__ = "critical_occasion"
    __table_args__ = (
        CheckConstraint("is_critical IN ('yes', 'no')", name="critical_occasion_is_critical"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    sub_unit: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    is_critical: Mapped[str] = mapped_column(Text, nullable=False, default="no")
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class Admin(Base):
    __tablename__ = "admin"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    admin_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    yetkili_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)


class AdminDevice(Base):
    __tablename__ = "admin_device"
    __table_args__ = (
        UniqueConstraint("admin_id", "device_fingerprint", name="admin_device_fingerprint"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    admin_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("admin.id"), nullable=False
    )
    device_fingerprint: Mapped[str] = mapped_column(Text, nullable=False)
    device_name: Mapped[str] = mapped_column(Text, nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_authorized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_used: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True))


class AppVersion(Base):
    __tablename__ = "app_version"
    __table_args__ = (
        CheckConstraint(_in_list("status", VERSION_STATUSES), name="app_version_status"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    version: Mapped[str] = mapped_column(Text, nullable=False)
    changelog: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
