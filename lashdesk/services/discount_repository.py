"""
Stored discount codes and their redemption.
"""
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lashdesk.lib.errors import AlreadyUsedByUser, ExhaustedPool
from lashdesk.lib.logging import get_logger
from lashdesk.models.discounts import DiscountCodeRow, DiscountRedemptionRow
from lashdesk.models.orders import LabsOrderRow
from lashdesk.schemas.discount import DiscountCode
from lashdesk.services.discount_codes import normalize_code, normalize_identifier


logger = get_logger(__name__)


class DiscountCodeRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> Optional[DiscountCodeRow]:
        normalized = normalize_code(code)
        if not normalized:
            return None
        # Reload the row: redemptions committed since it was first loaded must show in used_by
        return self.db.execute(
            select(DiscountCodeRow)
            .where(DiscountCodeRow.code == normalized)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_record(self, code: str) -> Optional[DiscountCode]:
        row = self.get_by_code(code)
        return row.to_record() if row else None

    def create(self, record: DiscountCode) -> DiscountCode:
        row = DiscountCodeRow(
            code=record.code,
            discount_type=record.discount_type,
            discount_value=record.discount_value,
            max_uses=record.max_uses,
            used_count=record.used_count,
            is_first_time_only=record.is_first_time_only,
            is_active=record.is_active,
            expires_at=record.expires_at,
        )
        if record.id:
            row.id = record.id
        self.db.add(row)
        self.db.commit()
        logger.info("Discount code created", extra={"code": row.code, "max_uses": row.max_uses})
        return row.to_record()

    def has_prior_orders(self, identifier: Optional[str]) -> bool:
        identifier = normalize_identifier(identifier)
        if identifier is None:
            return False
        count = self.db.execute(
            select(func.count()).select_from(LabsOrderRow).where(func.lower(LabsOrderRow.email) == identifier)
        ).scalar_one()
        return count > 0

    def redeem(self, code_id: str, identifier: Optional[str], order_id: Optional[str] = None) -> None:
        """
        Take one use from the code's pool for ``identifier``.

        Runs inside the caller's transaction and does not commit. The pool is
        decremented with a conditional UPDATE, so two checkouts racing for the
        last use can't both win; the (code_id, identifier) unique key does the
        same for one client redeeming twice.

        Raises:
            ExhaustedPool: no uses left
            AlreadyUsedByUser: this identifier already redeemed the code
        """
        identifier = normalize_identifier(identifier)

        result = self.db.execute(
            update(DiscountCodeRow)
            .where(DiscountCodeRow.id == code_id)
            .where(
                or_(
                    DiscountCodeRow.max_uses.is_(None),
                    DiscountCodeRow.used_count < DiscountCodeRow.max_uses,
                )
            )
            .values(used_count=DiscountCodeRow.used_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            logger.warning("Discount pool exhausted at redemption", extra={"code_id": code_id})
            raise ExhaustedPool("This discount code has already been used the maximum number of times")

        self.db.add(DiscountRedemptionRow(code_id=code_id, identifier=identifier, order_id=order_id))
        try:
            self.db.flush()
        except IntegrityError:
            logger.warning(
                "Duplicate discount redemption",
                extra={"code_id": code_id, "identifier": identifier},
            )
            raise AlreadyUsedByUser("You have already used this discount code")

        logger.info(
            "Discount code redeemed",
            extra={"code_id": code_id, "identifier": identifier, "order_id": order_id},
        )
