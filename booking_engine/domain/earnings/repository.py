"""Earnings repository - Database operations for provider pay rates and earnings"""

from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ...models import Booking, ProviderEarning, ProviderPayRate


class EarningsRepository:
    """Repository for earnings database operations"""

    @staticmethod
    def get_booking(db: Session, business_id: int, booking_id: int) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.business_id == business_id)
            .first()
        )

    @staticmethod
    def get_pay_rate(
        db: Session, business_id: int, provider_id: int, service_id: Optional[int]
    ) -> Optional[ProviderPayRate]:
        """Active rate for the booking's service, else the provider's service-agnostic rate"""
        query = db.query(ProviderPayRate).filter(
            ProviderPayRate.business_id == business_id,
            ProviderPayRate.provider_id == provider_id,
            ProviderPayRate.is_active.is_(True),
        )
        if service_id is not None:
            rate = (
                query.filter(ProviderPayRate.service_id == service_id)
                .order_by(ProviderPayRate.id.desc())
                .first()
            )
            if rate:
                return rate
        return query.filter(ProviderPayRate.service_id.is_(None)).order_by(ProviderPayRate.id.desc()).first()

    @staticmethod
    def get_earning_for_booking(db: Session, business_id: int, booking_id: int) -> Optional[ProviderEarning]:
        return (
            db.query(ProviderEarning)
            .filter(ProviderEarning.business_id == business_id, ProviderEarning.booking_id == booking_id)
            .first()
        )

    @staticmethod
    def add_earning(db: Session, earning: ProviderEarning) -> ProviderEarning:
        db.add(earning)
        db.flush()
        return earning

    @staticmethod
    def get_provider_totals(db: Session, business_id: int, provider_id: int) -> dict:
        """Gross, commission and net sums plus the still-unpaid net for one provider"""
        row = (
            db.query(
                func.coalesce(func.sum(ProviderEarning.gross_amount), 0),
                func.coalesce(func.sum(ProviderEarning.commission_amount), 0),
                func.coalesce(func.sum(ProviderEarning.net_amount), 0),
                func.coalesce(
                    func.sum(
                        case((ProviderEarning.status == "pending", ProviderEarning.net_amount), else_=0)
                    ),
                    0,
                ),
                func.count(ProviderEarning.id),
            )
            .filter(ProviderEarning.business_id == business_id, ProviderEarning.provider_id == provider_id)
            .one()
        )
        return {
            "gross": float(row[0]),
            "commission": float(row[1]),
            "net": float(row[2]),
            "pending": float(row[3]),
            "jobs": int(row[4]),
        }
