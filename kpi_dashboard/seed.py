import logging
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kpi_dashboard.config import settings
from kpi_dashboard.db import Base, SessionLocal, engine
from kpi_dashboard.models import Kpi

logger = logging.getLogger(__name__)

DEFAULT_KPIS = [
    # Operasyon
    {"category": "Operasyon", "name": "Günlük Sipariş Sayısı", "target": 500, "actual": 460, "period": "Günlük"},
    {"category": "Operasyon", "name": "Drive-Thru Ortalama Hizmet Süresi", "unit": "sn", "target": 120, "actual": 135, "period": "Günlük"},
    {"category": "Operasyon", "name": "Drive-Thru Sipariş Doğruluğu", "unit": "%", "target": 98, "actual": 95, "period": "Haftalık"},
    {"category": "Operasyon", "name": "Restoran Temizlik Skoru", "unit": "%", "target": 95, "actual": 90, "period": "Aylık"},
    {"category": "Operasyon", "name": "Hazırlama Süresi", "unit": "sn", "target": 90, "actual": 110, "period": "Günlük"},
    # Mutfak
    {"category": "Mutfak", "name": "Mutfak Hata Oranı", "unit": "%", "target": 1, "actual": 1, "period": "Günlük"},
    {"category": "Mutfak", "name": "Stokta Kalma Oranı", "unit": "%", "target": 98, "actual": 96, "period": "Aylık"},
    {"category": "Mutfak", "name": "Fire Oranı", "unit": "%", "target": 2, "actual": 3, "period": "Aylık"},
    {"category": "Mutfak", "name": "Hazırlanan Ürün Sayısı", "target": 1500, "actual": 1300, "period": "Günlük"},
    {"category": "Mutfak", "name": "Gıda Güvenliği Skoru", "unit": "%", "target": 95, "actual": 92, "period": "Haftalık"},
    # Müşteri Deneyimi
    {"category": "Müşteri Deneyimi", "name": "Müşteri Memnuniyeti", "unit": "%", "target": 90, "actual": 88, "period": "Aylık"},
    {"category": "Müşteri Deneyimi", "name": "Şikayet Sayısı", "target": 5, "actual": 7, "period": "Günlük"},
    {"category": "Müşteri Deneyimi", "name": "Servis Hızı", "unit": "sn", "target": 120, "actual": 135, "period": "Günlük"},
    {"category": "Müşteri Deneyimi", "name": "Sipariş Hatası Sayısı", "target": 2, "actual": 4, "period": "Günlük"},
    {"category": "Müşteri Deneyimi", "name": "Paket Servis Geri Bildirim Skoru", "target": 4, "actual": 4, "period": "Haftalık"},
    # Personel
    {"category": "Personel", "name": "Vardiya Uygunluğu", "unit": "%", "target": 95, "actual": 92, "period": "Aylık"},
    {"category": "Personel", "name": "Personel Devamsızlığı", "unit": "%", "target": 2, "actual": 3, "period": "Aylık"},
    {"category": "Personel", "name": "Eğitim Tamamlama Oranı", "unit": "%", "target": 100, "actual": 80, "period": "Aylık"},
    {"category": "Personel", "name": "İşe Alım Hızı", "unit": "gün", "target": 7, "actual": 10, "period": "Haftalık"},
    {"category": "Personel", "name": "Personel Memnuniyeti", "unit": "%", "target": 85, "actual": 82, "period": "Aylık"},
]


def init_db(bind: Engine) -> None:
    Base.metadata.create_all(bind=bind)


def seed_kpis(db: Session) -> int:
    """Insert the default KPI set into an empty table.

    Returns the number of rows inserted; an already populated table is left
    alone and 0 is returned.
    """
    if db.query(Kpi).first() is not None:
        return 0
    now = datetime.now(timezone.utc)
    for position, row in enumerate(DEFAULT_KPIS):
        db.add(Kpi(position=position, updated_at=now, **row))
    db.commit()
    return len(DEFAULT_KPIS)


def main() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    try:
        init_db(engine)
        with SessionLocal() as db:
            inserted = seed_kpis(db)
    except SQLAlchemyError:
        logger.exception("seeding failed")
        raise SystemExit(1)
    if inserted:
        logger.info("seeded %d KPIs", inserted)
    else:
        logger.info("KPI table already populated, skipping seed")


if __name__ == "__main__":
    main()
