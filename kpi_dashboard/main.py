from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from kpi_dashboard.config import settings
from kpi_dashboard.db import SessionLocal
from kpi_dashboard.models import (
    Admin,
    AdminDevice,
    AppVersion,
    CriticalOccasion,
    DailyReport,
    Kpi,
)
from kpi_dashboard.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)

app = FastAPI(title="KPI Dashboard")

CRITICAL_PRODUCTS = ("Ayran", "Salata", "Shake Süt", "Sundae Süt")

KpiCategory = Literal["Operasyon", "Mutfak", "Müşteri Deneyimi", "Personel"]
KpiPeriod = Literal["Günlük", "Haftalık", "Aylık", "Yıllık"]


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def calculate_status(target: float, actual: float) -> str:
    """Band a KPI by its absolute deviation from target.

    A zero target means no goal has been set. Otherwise meeting or beating the
    target is a success, falling short by at most 10 units is a warning and
    anything worse is danger.
    """
    if target == 0:
        return "neutral"
    deviation = actual - target
    if deviation >= 0:
        return "success"
    if deviation >= -10:
        return "warning"
    return "danger"


@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Rejected values are not echoed back; NaN/Infinity would not serialize.
    errors = [
        {key: value for key, value in error.items() if key != "input"}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": jsonable_encoder(errors)})


@app.exception_handler(SQLAlchemyError)
def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "internal server error"})


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check(db: Session = Depends(get_db)) -> dict:
    db.execute(text("SELECT 1"))
    return {"status": "healthy"}


# KPIs


def _kpi_out(kpi: Kpi) -> dict:
    return {
        "id": kpi.id,
        "name": kpi.name,
        "category": kpi.category,
        "target": kpi.target,
        "actual": kpi.actual,
        "period": kpi.period,
        "unit": kpi.unit,
        "position": kpi.position,
        "updatedAt": _iso(kpi.updated_at),
        "status": calculate_status(kpi.target, kpi.actual),
    }


def _get_kpi_or_404(db: Session, kpi_id: int) -> Kpi:
    kpi = db.get(Kpi, kpi_id)
    if not kpi:
        raise HTTPException(status_code=404, detail="KPI not found")
    return kpi


class KpiCreate(BaseModel):
    model_config = {
        "allow_inf_nan": False,
        "json_schema_extra": {
            "example": {
                "name": "Günlük Sipariş Sayısı",
                "category": "Operasyon",
                "target": 500,
                "actual": 460,
                "period": "Günlük",
            }
        }
    }
    name: str = Field(min_length=1)
    category: KpiCategory
    target: float
    actual: float = 0
    period: KpiPeriod
    unit: Optional[str] = None
    position: Optional[int] = None


class KpiUpdate(BaseModel):
    model_config = {"allow_inf_nan": False, "json_schema_extra": {"example": {"actual": 480}}}
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[KpiCategory] = None
    target: Optional[float] = None
    actual: Optional[float] = None
    period: Optional[KpiPeriod] = None
    unit: Optional[str] = None
    position: Optional[int] = None


class KpiReorder(BaseModel):
    model_config = {"populate_by_name": True}
    kpi_ids: list[int] = Field(alias="kpiIds")


@app.get("/api/kpis", tags=["KPIs"])
def list_kpis(db: Session = Depends(get_db)) -> list[dict]:
    kpis = db.query(Kpi).order_by(Kpi.position, Kpi.id).all()
    return [_kpi_out(kpi) for kpi in kpis]


@app.post("/api/kpis", tags=["KPIs"], status_code=201)
def create_kpi(payload: KpiCreate, db: Session = Depends(get_db)) -> dict:
    position = payload.position
    if position is None:
        # Not atomic: two concurrent creates can read the same max.
        max_position = db.query(func.max(Kpi.position)).scalar()
        position = 0 if max_position is None else max_position + 1
    kpi = Kpi(
        name=payload.name,
        category=payload.category,
        target=payload.target,
        actual=payload.actual,
        period=payload.period,
        unit=payload.unit,
        position=position,
        updated_at=_now(),
    )
    db.add(kpi)
    db.commit()
    db.refresh(kpi)
    return _kpi_out(kpi)


@app.post("/api/kpis/reorder", tags=["KPIs"])
def reorder_kpis(payload: KpiReorder, db: Session = Depends(get_db)) -> dict:
    for index, kpi_id in enumerate(payload.kpi_ids):
        db.query(Kpi).filter(Kpi.id == kpi_id).update(
            {Kpi.position: index}, synchronize_session=False
        )
    db.commit()
    logger.info("reordered %d KPIs", len(payload.kpi_ids))
    return {"success": True}


@app.post("/api/kpis/reset", tags=["KPIs"])
def reset_kpis(db: Session = Depends(get_db)) -> dict:
    updated = db.query(Kpi).update(
        {Kpi.actual: 0, Kpi.target: 0, Kpi.updated_at: _now()},
        synchronize_session=False,
    )
    db.commit()
    logger.info("reset target and actual on %d KPIs", updated)
    return {"success": True}


@app.get("/api/kpis/{kpi_id}", tags=["KPIs"])
def get_kpi(kpi_id: int, db: Session = Depends(get_db)) -> dict:
    return _kpi_out(_get_kpi_or_404(db, kpi_id))


@app.patch("/api/kpis/{kpi_id}", tags=["KPIs"])
def update_kpi(kpi_id: int, payload: KpiUpdate, db: Session = Depends(get_db)) -> dict:
    kpi = _get_kpi_or_404(db, kpi_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field != "unit":
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")
        setattr(kpi, field, value)
    kpi.updated_at = _now()
    db.commit()
    db.refresh(kpi)
    return _kpi_out(kpi)


@app.delete("/api/kpis/{kpi_id}", tags=["KPIs"], status_code=204)
def delete_kpi(kpi_id: int, db: Session = Depends(get_db)) -> Response:
    kpi = _get_kpi_or_404(db, kpi_id)
    db.delete(kpi)
    db.commit()
    return Response(status_code=204)


# Daily reports


def _report_out(report: DailyReport) -> dict:
    return {
        "id": report.id,
        "reportDate": _iso(report.report_date),
        "snapshot": report.snapshot,
        "totalKpis": report.total_kpis,
        "successfulKpis": report.successful_kpis,
        "successRate": report.success_rate,
    }


class DailyReportCreate(BaseModel):
    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "reportDate": "2026-01-15T21:00:00+03:00",
                "snapshot": {
                    "kpis": [
                        {
                            "id": 1,
                            "name": "Günlük Sipariş Sayısı",
                            "category": "Operasyon",
                            "target": 500,
                            "actual": 510,
                            "unit": None,
                            "status": "success",
                            "percentage": 102,
                        }
                    ],
                    "sentBy": "Admin",
                    "sentAt": "2026-01-15T21:00:00+03:00",
                },
                "totalKpis": 1,
                "successfulKpis": 1,
                "successRate": 100,
            }
        },
    }
    report_date: Optional[datetime] = Field(default=None, alias="reportDate")
    snapshot: Union[dict[str, Any], list[Any]]
    total_kpis: int = Field(alias="totalKpis", ge=0)
    successful_kpis: int = Field(alias="successfulKpis", ge=0)
    success_rate: int = Field(alias="successRate", ge=0, le=100)


def _list_reports(db: Session, limit: int) -> list[DailyReport]:
    return (
        db.query(DailyReport)
        .order_by(DailyReport.report_date, DailyReport.id)
        .limit(limit)
        .all()
    )


@app.post("/api/reports/daily", tags=["Daily Reports"], status_code=201)
def create_daily_report(payload: DailyReportCreate, db: Session = Depends(get_db)) -> dict:
    report = DailyReport(
        report_date=payload.report_date or _now(),
        snapshot=payload.snapshot,
        total_kpis=payload.total_kpis,
        successful_kpis=payload.successful_kpis,
        success_rate=payload.success_rate,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("daily report %s stored, success rate %s%%", report.id, report.success_rate)
    return _report_out(report)


@app.get("/api/reports/daily", tags=["Daily Reports"])
def list_daily_reports(
    limit: int = Query(default=settings.report_list_limit, ge=1),
    db: Session = Depends(get_db),
) -> list[dict]:
    return [_report_out(report) for report in _list_reports(db, limit)]


@app.delete("/api/reports/daily/{report_id}", tags=["Daily Reports"], status_code=204)
def delete_daily_report(report_id: int, db: Session = Depends(get_db)) -> Response:
    report = db.get(DailyReport, report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Daily report not found")
    db.delete(report)
    db.commit()
    return Response(status_code=204)


# Critical occasions


def _occasion_out(occasion: CriticalOccasion) -> dict:
    return {
        "id": occasion.id,
        "title": occasion.title,
        "subUnit": occasion.sub_unit,
        "description": occasion.description,
        "isCritical": occasion.is_critical,
        "createdAt": _iso(occasion.created_at),
    }


class CriticalOccasionCreate(BaseModel):
    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {"title": "Kritik Ürün", "subUnit": "Ayran", "isCritical": "yes"}
        },
    }
    title: str = Field(min_length=1)
    sub_unit: Optional[str] = Field(default=None, alias="subUnit")
    description: Optional[str] = None
    is_critical: Literal["yes", "no"] = Field(default="no", alias="isCritical")


@app.get("/api/critical-occasions", tags=["Critical Occasions"])
def list_critical_occasions(db: Session = Depends(get_db)) -> list[dict]:
    occasions = (
        db.query(CriticalOccasion)
        .order_by(CriticalOccasion.created_at, CriticalOccasion.id)
        .all()
    )
    return [_occasion_out(occasion) for occasion in occasions]


@app.post("/api/critical-occasions", tags=["Critical Occasions"], status_code=201)
def create_critical_occasion(
    payload: CriticalOccasionCreate, db: Session = Depends(get_db)
) -> dict:
    if payload.sub_unit in CRITICAL_PRODUCTS:
        exists = db.query(CriticalOccasion).filter(
            CriticalOccasion.sub_unit == payload.sub_unit
        ).first()
        if exists:
            raise HTTPException(
                status_code=409, detail=f"{payload.sub_unit} is already flagged"
            )
    occasion = CriticalOccasion(
        title=payload.title,
        sub_unit=payload.sub_unit,
        description=payload.description,
        is_critical=payload.is_critical,
        created_at=_now(),
    )
    db.add(occasion)
    db.commit()
    db.refresh(occasion)
    return _occasion_out(occasion)


@app.delete("/api/critical-occasions/{occasion_id}", tags=["Critical Occasions"], status_code=204)
def delete_critical_occasion(occasion_id: int, db: Session = Depends(get_db)) -> Response:
    occasion = db.get(CriticalOccasion, occasion_id)
    if not occasion:
        raise HTTPException(status_code=404, detail="Critical occasion not found")
    db.delete(occasion)
    db.commit()
    return Response(status_code=204)


# Admins and devices


def _admin_out(admin: Admin) -> dict:
    return {
        "id": admin.id,
        "adminId": admin.admin_id,
        "yetkiliApproved": admin.yetkili_approved,
        "createdAt": _iso(admin.created_at),
    }


def _device_out(device: AdminDevice) -> dict:
    return {
        "id": device.id,
        "adminId": device.admin_id,
        "deviceFingerprint": device.device_fingerprint,
        "deviceName": device.device_name,
        "isApproved": device.is_approved,
        "isAuthorized": device.is_authorized,
        "createdAt": _iso(device.created_at),
        "lastUsed": _iso(device.last_used),
    }


def _get_device_or_404(db: Session, device_id: int) -> AdminDevice:
    device = db.get(AdminDevice, device_id)
    if not device:
        raise HTTPException(status_code=404, detail="device not found")
    return device


class AdminRegister(BaseModel):
    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {"example": {"adminId": "mudur01", "password": "s3cret"}},
    }
    admin_id: str = Field(alias="adminId", min_length=1)
    password: str = Field(min_length=1)


class AdminLogin(BaseModel):
    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "adminId": "mudur01",
                "password": "s3cret",
                "deviceFingerprint": "fp_1a2b3c",
                "deviceName": "Kasa Tableti",
            }
        },
    }
    admin_id: str = Field(alias="adminId", min_length=1)
    password: str = Field(min_length=1)
    device_fingerprint: str = Field(alias="deviceFingerprint", min_length=1)
    device_name: Optional[str] = Field(default=None, alias="deviceName")


class YetkiliUpdate(BaseModel):
    model_config = {"populate_by_name": True}
    yetkili_approved: bool = Field(alias="yetkiliApproved", strict=True)


class DeviceAuthorizationUpdate(BaseModel):
    model_config = {"populate_by_name": True}
    is_authorized: bool = Field(alias="isAuthorized", strict=True)


@app.post("/api/admin/register", tags=["Admin"], status_code=201)
def register_admin(payload: AdminRegister, db: Session = Depends(get_db)) -> dict:
    existing = db.query(Admin).filter(Admin.admin_id == payload.admin_id).first()
    if existing:
        raise HTTPException(status_code=409, detail="admin id already in use")
    admin = Admin(
        admin_id=payload.admin_id,
        password_hash=get_password_hash(payload.password),
        yetkili_approved=False,
        created_at=_now(),
    )
    db.add(admin)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="admin id already in use")
    db.refresh(admin)
    logger.info("registered admin %s", admin.admin_id)
    return {"success": True, "admin": {"id": admin.id, "adminId": admin.admin_id}}


@app.post("/api/admin/login", tags=["Admin"])
def login_admin(payload: AdminLogin, db: Session = Depends(get_db)) -> dict:
    admin = db.query(Admin).filter(Admin.admin_id == payload.admin_id).first()
    if not admin or not verify_password(payload.password, admin.password_hash):
        logger.warning("failed login for admin id %s", payload.admin_id)
        raise HTTPException(status_code=401, detail="invalid admin id or password")
    device = db.query(AdminDevice).filter(
        AdminDevice.admin_id == admin.id,
        AdminDevice.device_fingerprint == payload.device_fingerprint,
    ).first()
    if not device:
        device = AdminDevice(
            admin_id=admin.id,
            device_fingerprint=payload.device_fingerprint,
            device_name=payload.device_name or "Unknown Device",
            is_approved=False,
            is_authorized=False,
            created_at=_now(),
        )
        db.add(device)
        logger.info("new device registered for admin %s, awaiting approval", admin.admin_id)
    device.last_used = _now()
    db.commit()
    db.refresh(device)
    return {
        "success": True,
        "admin": {
            "id": admin.id,
            "adminId": admin.admin_id,
            "yetkiliApproved": admin.yetkili_approved,
        },
        "device": {
            "id": device.id,
            "isApproved": device.is_approved,
            "isAuthorized": device.is_authorized,
            "deviceName": device.device_name,
        },
    }


@app.get("/api/admin/reports", tags=["Admin"])
def list_admin_reports(db: Session = Depends(get_db)) -> list[dict]:
    return [_report_out(report) for report in _list_reports(db, settings.admin_report_limit)]


@app.get("/api/admin/all-admins", tags=["Admin"])
def list_admins(db: Session = Depends(get_db)) -> list[dict]:
    admins = db.query(Admin).order_by(Admin.created_at, Admin.id).all()
    return [_admin_out(admin) for admin in admins]


@app.patch("/api/admin/update-yetkili/{admin_pk}", tags=["Admin"])
def update_admin_yetkili(
    admin_pk: int, payload: YetkiliUpdate, db: Session = Depends(get_db)
) -> dict:
    admin = db.get(Admin, admin_pk)
    if not admin:
        raise HTTPException(status_code=404, detail="admin not found")
    admin.yetkili_approved = payload.yetkili_approved
    db.commit()
    db.refresh(admin)
    logger.info("admin %s yetkili approval set to %s", admin.admin_id, admin.yetkili_approved)
    return {"success": True, "admin": _admin_out(admin)}


@app.get("/api/admin/all-devices", tags=["Admin Devices"])
def list_devices(db: Session = Depends(get_db)) -> list[dict]:
    devices = db.query(AdminDevice).order_by(AdminDevice.created_at, AdminDevice.id).all()
    return [_device_out(device) for device in devices]


@app.get("/api/admin/pending-devices", tags=["Admin Devices"])
def list_pending_devices(db: Session = Depends(get_db)) -> list[dict]:
    devices = (
        db.query(AdminDevice)
        .filter(AdminDevice.is_approved.is_(False))
        .order_by(AdminDevice.created_at, AdminDevice.id)
        .all()
    )
    return [_device_out(device) for device in devices]


@app.post("/api/admin/approve-device/{device_id}", tags=["Admin Devices"])
def approve_device(device_id: int, db: Session = Depends(get_db)) -> dict:
    device = _get_device_or_404(db, device_id)
    device.is_approved = True
    db.commit()
    db.refresh(device)
    logger.info("device %s approved", device.id)
    return {"success": True, "device": _device_out(device)}


@app.post("/api/admin/reject-device/{device_id}", tags=["Admin Devices"])
def reject_device(device_id: int) -> dict:
    # Acknowledged only: the device row is left untouched.
    logger.warning("reject requested for device %s; no state changed", device_id)
    return {"success": True, "message": "device rejected"}


@app.patch("/api/admin/update-device-authorization/{device_id}", tags=["Admin Devices"])
def update_device_authorization(
    device_id: int, payload: DeviceAuthorizationUpdate, db: Session = Depends(get_db)
) -> dict:
    device = _get_device_or_404(db, device_id)
    device.is_authorized = payload.is_authorized
    db.commit()
    db.refresh(device)
    logger.info("device %s authorization set to %s", device.id, device.is_authorized)
    return {"success": True, "device": _device_out(device)}


# App versions


def _version_out(version: AppVersion) -> dict:
    return {
        "id": version.id,
        "version": version.version,
        "changelog": version.changelog,
        "status": version.status,
        "createdAt": _iso(version.created_at),
        "updatedAt": _iso(version.updated_at),
    }


def _get_version_or_404(db: Session, version_id: int) -> AppVersion:
    version = db.get(AppVersion, version_id)
    if not version:
        raise HTTPException(status_code=404, detail="version not found")
    return version


class VersionCreate(BaseModel):
    model_config = {
        "json_schema_extra": {"example": {"version": "1.2.0", "changelog": "Kritik ürün listesi"}}
    }
    version: str = Field(min_length=1)
    changelog: Optional[str] = None


@app.get("/api/version", tags=["Versions"])
def get_latest_version(db: Session = Depends(get_db)) -> dict:
    version = (
        db.query(AppVersion)
        .filter(AppVersion.status == "published")
        .order_by(AppVersion.id.desc())
        .first()
    )
    if not version:
        return {"version": settings.default_app_version, "changelog": None}
    return {"version": version.version, "changelog": version.changelog}


@app.post("/api/admin/versions", tags=["Versions"], status_code=201)
def create_version(payload: VersionCreate, db: Session = Depends(get_db)) -> dict:
    now = _now()
    version = AppVersion(
        version=payload.version,
        changelog=payload.changelog,
        status="draft",
        created_at=now,
        updated_at=now,
    )
    db.add(version)
    db.commit()
    db.refresh(version)
    return {"success": True, "version": _version_out(version)}


@app.get("/api/admin/versions", tags=["Versions"])
def list_versions(db: Session = Depends(get_db)) -> list[dict]:
    versions = db.query(AppVersion).order_by(AppVersion.created_at.desc(), AppVersion.id.desc()).all()
    return [_version_out(version) for version in versions]


@app.post("/api/admin/versions/{version_id}/publish", tags=["Versions"])
def publish_version(version_id: int, db: Session = Depends(get_db)) -> dict:
    version = _get_version_or_404(db, version_id)
    version.status = "published"
    version.updated_at = _now()
    db.commit()
    db.refresh(version)
    logger.info("published version %s", version.version)
    return {"success": True, "version": _version_out(version)}


@app.delete("/api/admin/versions/{version_id}", tags=["Versions"])
def delete_version(version_id: int, db: Session = Depends(get_db)) -> dict:
    version = _get_version_or_404(db, version_id)
    db.delete(version)
    db.commit()
    return {"success": True}
