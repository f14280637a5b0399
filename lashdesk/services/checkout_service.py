"""
Labs checkout - quote and place web-services orders.

checkout() is all-or-nothing: the required-service gate, the minimum order,
the discount rules and the high-value limit are all checked before anything
is written, and the discount redemption and the order row commit together.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional, Sequence, Union
from uuid import uuid4

from sqlalchemy.orm import Session

from lashdesk.lib.errors import DiscountCodeError, HighValueOrder
from lashdesk.lib.logging import get_logger
from lashdesk.lib.metrics import get_metrics_collector
from lashdesk.lib.pricing_config import get_cart_rules
from lashdesk.models.orders import LabsOrderRow
from lashdesk.schemas.cart import (
    AppliedDiscount,
    CheckoutQuote,
    ExtraFee,
    LabsOrder,
    MonthlyItem,
    OneTimeItem,
    ServiceOffering,
    YearlyItem,
    line_items_adapter,
)
from lashdesk.schemas.discount import DiscountValidation
from lashdesk.services.cart_pricing import (
    cart_subtotal,
    check_minimum_order,
    checkout_total,
    ensure_required_services,
    find_missing_required_services,
)
from lashdesk.services.discount_codes import (
    check_discount_code,
    normalize_code,
    validate_discount_code,
)
from lashdesk.services.discount_repository import DiscountCodeRepository


logger = get_logger(__name__)

LineItem = Union[OneTimeItem, YearlyItem, MonthlyItem]


class CheckoutService:
    def __init__(
        self,
        db: Session,
        catalog: Optional[Mapping[str, ServiceOffering]] = None,
    ):
        self.db = db
        self.catalog = catalog or {}
        self.codes = DiscountCodeRepository(db)
        self.metrics = get_metrics_collector()

    def validate_code(
        self,
        code: str,
        email: Optional[str],
        subtotal: float,
        now: Optional[datetime] = None,
    ) -> DiscountValidation:
        """Check a code against a cart subtotal without redeeming it."""
        result = validate_discount_code(
            self.codes.get_record(code),
            code,
            email,
            subtotal,
            has_prior_orders=self.codes.has_prior_orders(email),
            now=now,
        )
        self.metrics.increment_discount_validations("valid" if result.valid else result.error)
        return result

    def quote(
        self,
        items: Sequence[LineItem],
        email: Optional[str] = None,
        discount_code: Optional[str] = None,
        extra_fees: Iterable[ExtraFee] = (),
        prevalidated: bool = False,
        now: Optional[datetime] = None,
    ) -> CheckoutQuote:
        """
        Price a cart for display.

        Nothing raises here: a missing service, a short cart or a rejected
        code is reported on the quote and the totals are shown without the
        discount.
        """
        items = list(items)
        extra_fees = list(extra_fees)
        cart_rules = get_cart_rules()

        missing = [] if prevalidated else find_missing_required_services(items, self.catalog)
        subtotal = cart_subtotal(items, extra_fees)

        validation = None
        applied = None
        if discount_code and normalize_code(discount_code):
            validation = self.validate_code(discount_code, email, subtotal, now=now)
            if validation.valid:
                applied = AppliedDiscount(code=validation.code, discount_amount=validation.discount_amount)

        totals = checkout_total(
            items,
            applied_discount=applied,
            extra_fees=extra_fees,
            catalog=self.catalog,
            require_services=False,
            high_value_order_limit=cart_rules.high_value_order_limit,
        )
        return CheckoutQuote(
            totals=totals,
            discount=validation,
            missing_required_services=missing,
            meets_minimum=subtotal >= cart_rules.minimum_cart_value,
            minimum_cart_value=cart_rules.minimum_cart_value,
        )

    def checkout(
        self,
        items: Sequence[LineItem],
        email: str,
        name: Optional[str] = None,
        discount_code: Optional[str] = None,
        extra_fees: Iterable[ExtraFee] = (),
        prevalidated: bool = False,
        now: Optional[datetime] = None,
    ) -> LabsOrder:
        """
        Place an order.

        Raises:
            MissingRequiredService: cart lacks a required service
            BelowMinimum: pre-discount subtotal under the minimum order value
            DiscountCodeError: the code fails a rule or loses the race for the last use
            HighValueOrder: total above the consultation limit
        """
        items = list(items)
        extra_fees = list(extra_fees)
        now = now or datetime.now(timezone.utc)
        cart_rules = get_cart_rules()

        ensure_required_services(items, self.catalog, prevalidated=prevalidated)

        subtotal = cart_subtotal(items, extra_fees)
        check_minimum_order(subtotal, cart_rules.minimum_cart_value)

        code_row = None
        applied = None
        if discount_code and normalize_code(discount_code):
            code_row = self.codes.get_by_code(discount_code)
            try:
                amount = check_discount_code(
                    code_row.to_record() if code_row else None,
                    discount_code,
                    email,
                    subtotal,
                    minimum_cart_value=cart_rules.minimum_cart_value,
                    has_prior_orders=self.codes.has_prior_orders(email),
                    now=now,
                )
            except DiscountCodeError as exc:
                self.metrics.increment_discount_validations(exc.kind)
                raise
            self.metrics.increment_discount_validations("valid")
            applied = AppliedDiscount(code=code_row.code, discount_amount=amount)

        totals = checkout_total(
            items,
            applied_discount=applied,
            extra_fees=extra_fees,
            catalog=self.catalog,
            prevalidated=True,
            high_value_order_limit=cart_rules.high_value_order_limit,
        )
        if totals.requires_high_value_contact:
            logger.info("High-value order routed to consultation", extra={"total": totals.total, "email": email})
            raise HighValueOrder(
                "Orders of this size are handled through a consultation. Please contact us to proceed.",
                details={"total": totals.total, "limit": cart_rules.high_value_order_limit},
            )

        order_id = f"order-{uuid4().hex[:12]}"
        try:
            if code_row is not None:
                self.codes.redeem(code_row.id, email, order_id=order_id)
            row = LabsOrderRow(
                id=order_id,
                email=email.strip().lower(),
                name=name,
                items=line_items_adapter.dump_python(items, mode="json"),
                extra_fees=[fee.model_dump(mode="json") for fee in extra_fees],
                subtotal=totals.subtotal,
                setup_fees_total=totals.setup_fees_total,
                discount=totals.discount,
                applied_code=totals.applied_code,
                tax_percentage=totals.tax_percentage,
                tax_amount=totals.tax_amount,
                total=totals.total,
                initial_payment=totals.initial_payment,
                remaining_payment=totals.remaining_payment,
                payment_status=totals.payment_status,
                created_at=now,
            )
            self.db.add(row)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.metrics.increment_checkouts(totals.payment_status)
        logger.info(
            "Labs order placed",
            extra={
                "order_id": order_id,
                "total": totals.total,
                "initial_payment": totals.initial_payment,
                "applied_code": totals.applied_code,
            },
        )
        return LabsOrder(
            id=order_id,
            email=row.email,
            name=name,
            items=items,
            extra_fees=extra_fees,
            totals=totals,
            created_at=now,
        )

    def list_orders(self, email: str) -> List[LabsOrder]:
        rows = (
            self.db.query(LabsOrderRow)
            .filter(LabsOrderRow.email == email.strip().lower())
            .order_by(LabsOrderRow.created_at.desc())
            .all()
        )
        return [self._to_order(row) for row in rows]

    @staticmethod
    def _to_order(row: LabsOrderRow) -> LabsOrder:
        totals = {
            "subtotal": float(row.subtotal),
            "setup_fees_total": float(row.setup_fees_total),
            "extra_fees_total": sum(fee["amount"] for fee in row.extra_fees or []),
            "discount": float(row.discount),
            "subtotal_after_discount": float(row.subtotal) - float(row.discount),
            "tax_percentage": float(row.tax_percentage),
            "tax_amount": float(row.tax_amount),
            "total": float(row.total),
            "initial_payment": float(row.initial_payment),
            "remaining_payment": float(row.remaining_payment),
            "payment_status": row.payment_status,
            "applied_code": row.applied_code,
        }
        return LabsOrder(
            id=row.id,
            email=row.email,
            name=row.name,
            items=row.items,
            extra_fees=row.extra_fees,
            totals=totals,
            created_at=row.created_at,
        )
