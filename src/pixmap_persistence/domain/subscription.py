from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import Field, ValidationInfo, field_validator, model_validator

from pixmap_persistence.base.utils import normalize_datetime, utc_now
from pixmap_persistence.domain.base import DomainEntity, require_text

VERIFICATION_INTERVAL = timedelta(hours=24)


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    GRACE_PERIOD = "GRACE_PERIOD"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class Subscription(DomainEntity):
    """A store subscription purchase tracked for one user."""

    user_id: str
    product_id: str
    transaction_id: str
    purchase_token: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    start_date: datetime
    expiration_date: datetime
    auto_renewing: bool = True
    last_verified: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    renewal_count: int = Field(default=0, ge=0)

    @field_validator("user_id", "product_id", "transaction_id", "purchase_token")
    @classmethod
    def _check_required(cls, value: str, info: ValidationInfo) -> str:
        return require_text(value, f"{info.field_name} cannot be empty")

    @field_validator("start_date", "expiration_date", "last_verified", "cancelled_at")
    @classmethod
    def _normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return normalize_datetime(value) if value is not None else None

    @model_validator(mode="after")
    def _check_period(self) -> "Subscription":
        if self.expiration_date < self.start_date:
            raise ValueError("Expiration date cannot be before the start date")
        return self

    @classmethod
    def create(
        cls,
        user_id: str,
        product_id: str,
        transaction_id: str,
        purchase_token: str,
        start_date: datetime,
        expiration_date: datetime,
        auto_renewing: bool = True,
    ) -> "Subscription":
        return cls(
            user_id=user_id,
            product_id=product_id,
            transaction_id=transaction_id,
            purchase_token=purchase_token,
            start_date=start_date,
            expiration_date=expiration_date,
            auto_renewing=auto_renewing,
        )

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = normalize_datetime(now) if now is not None else utc_now()
        return self.status == SubscriptionStatus.ACTIVE and now < self.expiration_date

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = normalize_datetime(now) if now is not None else utc_now()
        return now >= self.expiration_date

    def needs_verification(self, now: Optional[datetime] = None) -> bool:
        now = normalize_datetime(now) if now is not None else utc_now()
        if self.status != SubscriptionStatus.ACTIVE:
            return False
        return self.last_verified is None or self.last_verified < now - VERIFICATION_INTERVAL

    def mark_as_verified(self, when: Optional[datetime] = None) -> "Subscription":
        return self._changed(last_verified=when or utc_now())

    def update_status(self, status: SubscriptionStatus) -> "Subscription":
        return self._changed(status=status)

    def cancel(self, when: Optional[datetime] = None) -> "Subscription":
        return self._changed(
            status=SubscriptionStatus.CANCELLED,
            auto_renewing=False,
            cancelled_at=when or utc_now(),
        )

    def renew(self, new_expiration_date: datetime) -> "Subscription":
        return self._changed(
            status=SubscriptionStatus.ACTIVE,
            expiration_date=new_expiration_date,
            renewal_count=self.renewal_count + 1,
        )

    def expire(self) -> "Subscription":
        return self._changed(status=SubscriptionStatus.EXPIRED, auto_renewing=False)
