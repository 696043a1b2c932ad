import logging
from datetime import datetime
from logging import LoggerAdapter
from typing import Any, List, Optional, Tuple, Union

import aiosqlite

from pixmap_persistence.base.exceptions import (KeyAlreadyExistsException,
                                                ObjectNotFoundException)
from pixmap_persistence.base.utils import (from_epoch_millis,
                                           normalize_datetime, utc_now)
from pixmap_persistence.domain.subscription import (VERIFICATION_INTERVAL,
                                                    Subscription,
                                                    SubscriptionStatus)
from pixmap_persistence.repositories.base import SqliteRepositoryBase
from pixmap_persistence.sqlite.context import DatabaseContext


def _optional_time(millis: Optional[int]) -> Optional[datetime]:
    return from_epoch_millis(millis) if millis is not None else None


class SubscriptionRepository(SqliteRepositoryBase[Subscription]):
    """Store subscriptions. `transaction_id` is unique per purchase."""

    table_name = "subscriptions"
    columns = (
        "id, user_id, product_id, transaction_id, purchase_token, status, start_date, "
        "expiration_date, auto_renewing, last_verified, cancelled_at, renewal_count, timestamp"
    )
    default_order = "start_date DESC, id DESC"

    def __init__(
        self,
        context: DatabaseContext,
        logger: Optional[Union[logging.Logger, LoggerAdapter]] = None,
    ):
        super().__init__(context, Subscription, logger)

    def _map_row(self, row: aiosqlite.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            user_id=row["user_id"],
            product_id=row["product_id"],
            transaction_id=row["transaction_id"],
            purchase_token=row["purchase_token"],
            status=SubscriptionStatus(row["status"]),
            start_date=from_epoch_millis(row["start_date"]),
            expiration_date=from_epoch_millis(row["expiration_date"]),
            auto_renewing=bool(row["auto_renewing"]),
            last_verified=_optional_time(row["last_verified"]),
            cancelled_at=_optional_time(row["cancelled_at"]),
            renewal_count=row["renewal_count"],
            timestamp=from_epoch_millis(row["timestamp"]),
        )

    @staticmethod
    def _row_values(s: Subscription) -> Tuple[Any, ...]:
        return (
            s.user_id, s.product_id, s.transaction_id, s.purchase_token, s.status,
            s.start_date, s.expiration_date, s.auto_renewing, s.last_verified,
            s.cancelled_at, s.renewal_count, s.timestamp,
        )

    async def _insert_row(self, subscription: Subscription) -> None:
        await self._context.execute_non_query(
            """INSERT INTO subscriptions
               (user_id, product_id, transaction_id, purchase_token, status, start_date,
                expiration_date, auto_renewing, last_verified, cancelled_at, renewal_count, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            self._row_values(subscription),
        )

    async def _update_row(self, subscription: Subscription) -> None:
        await self._context.execute_non_query(
            """UPDATE subscriptions
               SET user_id = ?, product_id = ?, transaction_id = ?, purchase_token = ?,
                   status = ?, start_date = ?, expiration_date = ?, auto_renewing = ?,
                   last_verified = ?, cancelled_at = ?, renewal_count = ?, timestamp = ?
               WHERE id = ?""",
            self._row_values(subscription) + (subscription.id,),
        )

    # --- CRUD ---

    async def create(self, subscription: Subscription) -> Subscription:
        async def _create() -> int:
            taken = await self._context.execute_scalar(
                "SELECT EXISTS(SELECT 1 FROM subscriptions WHERE transaction_id = ?)",
                (subscription.transaction_id,),
            )
            if taken:
                raise KeyAlreadyExistsException(
                    f"Subscription with transaction id '{subscription.transaction_id}' already exists",
                    operation="Create",
                    entity=self.entity_name,
                )
            return await self._context.insert(subscription, self._insert_row)

        try:
            self.validate_entity(subscription)
            new_id = await self._context.execute_in_transaction(_create)
        except Exception as e:
            self._handle_error(e, "Create")
        self._logger.info(
            f"Created subscription {new_id} for user '{subscription.user_id}' ({subscription.product_id})"
        )
        return subscription.with_id(new_id)

    async def update(self, subscription: Subscription) -> Subscription:
        try:
            self.validate_entity(subscription)
            rows = await self._context.update(subscription, self._update_row)
            if rows == 0:
                raise ObjectNotFoundException(
                    f"Subscription with id {subscription.id} not found",
                    operation="Update",
                    entity=self.entity_name,
                )
        except Exception as e:
            self._handle_error(e, "Update")
        return subscription

    async def delete(self, id: int) -> bool:
        return await self._delete_by_id(id)

    # --- Queries ---

    async def get_active_subscription(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Optional[Subscription]:
        """The user's ACTIVE subscription that expires last, if it has not expired."""
        now = normalize_datetime(now) if now is not None else utc_now()
        try:
            return await self._context.execute_query_single(
                self._select(
                    "user_id = ? AND status = ? AND expiration_date > ?",
                    order_by="expiration_date DESC",
                    suffix="LIMIT 1",
                ),
                (user_id, SubscriptionStatus.ACTIVE, now),
                self._map_row,
            )
        except Exception as e:
            self._handle_error(e, "GetActiveSubscription")

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Subscription]:
        try:
            return await self._context.execute_query_single(
                self._select("transaction_id = ?", suffix="LIMIT 1"), (transaction_id,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetByTransactionId")

    async def get_by_purchase_token(self, purchase_token: str) -> Optional[Subscription]:
        try:
            return await self._context.execute_query_single(
                self._select("purchase_token = ?", suffix="LIMIT 1"), (purchase_token,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetByPurchaseToken")

    async def get_by_user_id(self, user_id: str) -> List[Subscription]:
        try:
            return await self._context.execute_query(
                self._select("user_id = ?"), (user_id,), self._map_row
            )
        except Exception as e:
            self._handle_error(e, "GetByUserId")

    async def get_expired(self, now: Optional[datetime] = None) -> List[Subscription]:
        """ACTIVE or GRACE_PERIOD subscriptions whose expiration date has passed."""
        now = normalize_datetime(now) if now is not None else utc_now()
        try:
            return await self._context.execute_query(
                self._select("expiration_date <= ? AND status IN (?, ?)", order_by="expiration_date"),
                (now, SubscriptionStatus.ACTIVE, SubscriptionStatus.GRACE_PERIOD),
                self._map_row,
            )
        except Exception as e:
            self._handle_error(e, "GetExpired")

    async def get_needing_verification(self, now: Optional[datetime] = None) -> List[Subscription]:
        """ACTIVE subscriptions never verified or last verified over 24 hours ago."""
        now = normalize_datetime(now) if now is not None else utc_now()
        try:
            return await self._context.execute_query(
                self._select(
                    "status = ? AND (last_verified IS NULL OR last_verified < ?)",
                    order_by="id",
                ),
                (SubscriptionStatus.ACTIVE, now - VERIFICATION_INTERVAL),
                self._map_row,
            )
        except Exception as e:
            self._handle_error(e, "GetNeedingVerification")
