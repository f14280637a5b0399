"""
Cart pricing for the Labs web-services storefront.

All of the checkout arithmetic lives here: line-item discounts, setup fees
for yearly services, flat extra fees, the minimum-order gate, the
required-service gate, tax and the first-payment / remaining-balance split.
The checkout page and the server both render these numbers; nothing else
recomputes them.
"""
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from lashdesk.lib.currency import round_amount
from lashdesk.lib.errors import BelowMinimum, MissingRequiredService
from lashdesk.lib.logging import get_logger
from lashdesk.lib.pricing_config import (
    CartRules,
    CheckoutRules,
    DomainPricing,
    get_cart_rules,
    get_checkout_rules,
    get_domain_pricing,
)
from lashdesk.schemas.cart import (
    AppliedDiscount,
    CheckoutTotals,
    ExtraFee,
    MonthlyItem,
    OneTimeItem,
    ServiceOffering,
    YearlyItem,
)


logger = get_logger(__name__)

LineItem = Union[OneTimeItem, YearlyItem, MonthlyItem]

URGENT_TIMELINE = "urgent"
NEW_DOMAIN = "new"


def final_line_item_price(item: LineItem) -> float:
    """
    Unit price after the item's own discount, never below zero.

    An absolute ``discount_amount`` takes precedence over a percentage.
    """
    if item.discount_amount is not None:
        return max(item.price - item.discount_amount, 0.0)
    if item.discount is not None:
        return max(item.price - item.price * item.discount / 100, 0.0)
    return item.price


def first_payment_for_item(item: LineItem) -> float:
    """Per-unit amount due at checkout for this item."""
    if isinstance(item, YearlyItem):
        return item.setup_fee + final_line_item_price(item)
    return final_line_item_price(item)


def recurring_price(item: LineItem) -> Optional[float]:
    """
    Per-unit renewal charge: yearly and monthly items renew at their
    discounted price, one-time items don't renew.
    """
    if isinstance(item, (YearlyItem, MonthlyItem)):
        return final_line_item_price(item)
    return None


def setup_fees_total(items: Iterable[LineItem]) -> float:
    """Setup fees are per unit and charged once, with the first payment."""
    return sum(
        item.setup_fee * item.quantity
        for item in items
        if isinstance(item, YearlyItem)
    )


def build_extra_fees(
    timeline: Optional[str] = None,
    domain_type: Optional[str] = None,
    cart_rules: Optional[CartRules] = None,
    domain_pricing: Optional[DomainPricing] = None,
) -> List[ExtraFee]:
    """
    Flat fees chosen on the checkout form.

    Args:
        timeline: "urgent" adds the configured priority fee
        domain_type: "new" adds the domain setup fee and first year
    """
    cart_rules = cart_rules or get_cart_rules()
    domain_pricing = domain_pricing or get_domain_pricing()

    fees: List[ExtraFee] = []
    if timeline == URGENT_TIMELINE and cart_rules.priority_fee > 0:
        fees.append(ExtraFee(label="Priority fee", amount=cart_rules.priority_fee))
    if domain_type == NEW_DOMAIN:
        if domain_pricing.setup_fee > 0:
            fees.append(ExtraFee(label="Domain setup fee", amount=domain_pricing.setup_fee))
        if domain_pricing.annual_price > 0:
            fees.append(ExtraFee(label="Domain (first year)", amount=domain_pricing.annual_price))
    return fees


def cart_subtotal(items: Iterable[LineItem], extra_fees: Iterable[ExtraFee] = ()) -> float:
    """
    Pre-discount-code total.

    This is the figure checked against the minimum order value. A discount
    code applied afterwards may take the payable total below the minimum.
    """
    items = list(items)
    line_total = sum(final_line_item_price(item) * item.quantity for item in items)
    return line_total + setup_fees_total(items) + sum(fee.amount for fee in extra_fees)


def check_minimum_order(subtotal: float, minimum: Optional[float] = None) -> None:
    minimum = get_cart_rules().minimum_cart_value if minimum is None else minimum
    if subtotal < minimum:
        raise BelowMinimum(subtotal, minimum)


def find_missing_required_services(
    items: Sequence[LineItem],
    catalog: Optional[Mapping[str, ServiceOffering]] = None,
) -> List[str]:
    """
    Names of required services that aren't in the cart.

    Requirements are followed transitively through the catalog: if A needs B
    and B needs C, a cart holding only A is missing both B and C. Names come
    from the catalog when it knows the service, otherwise the id is used.
    """
    catalog = catalog or {}
    in_cart: Set[str] = {item.product_id for item in items}
    requirements: Dict[str, List[str]] = {
        sid: list(offering.required_services) for sid, offering in catalog.items()
    }
    for item in items:
        requirements[item.product_id] = list(item.required_services)

    missing: List[str] = []
    visited: Set[str] = set()

    def visit(service_id: str) -> None:
        if service_id in visited:
            return
        visited.add(service_id)
        for required_id in requirements.get(service_id, []):
            if required_id not in in_cart:
                offering = catalog.get(required_id)
                name = offering.name if offering else required_id
                if name not in missing:
                    missing.append(name)
            visit(required_id)

    for item in items:
        visit(item.product_id)

    return missing


def ensure_required_services(
    items: Sequence[LineItem],
    catalog: Optional[Mapping[str, ServiceOffering]] = None,
    prevalidated: bool = False,
) -> None:
    """
    Reject a cart whose items depend on services it doesn't contain.

    Carts filled by a guided "add all" bundle are already complete and pass
    ``prevalidated=True`` to skip the check.
    """
    if prevalidated:
        return
    missing = find_missing_required_services(items, catalog)
    if missing:
        logger.warning("Checkout blocked by missing required services", extra={"missing": missing})
        raise MissingRequiredService(missing)


def split_payment(total: float, rules: Optional[CheckoutRules] = None) -> Dict[str, float]:
    """
    Work out the first payment for an order total.

    Totals up to the full-payment threshold are paid in full. Totals above
    the partial-payment threshold pay the configured percentage now and the
    rest later; anything between the two thresholds is also paid in full.
    """
    rules = rules or get_checkout_rules()
    if total > rules.partial_payment_threshold and total > rules.full_payment_threshold:
        initial = round_amount(total * rules.partial_payment_percentage / 100)
        return {"initial_payment": initial, "remaining_payment": total - initial}
    return {"initial_payment": total, "remaining_payment": 0.0}


def _discount_value(applied_discount: Union[AppliedDiscount, float, None]) -> float:
    if applied_discount is None:
        return 0.0
    if isinstance(applied_discount, AppliedDiscount):
        return applied_discount.discount_amount
    return float(applied_discount)


def checkout_total(
    items: Sequence[LineItem],
    applied_discount: Union[AppliedDiscount, float, None] = None,
    tax_percentage: Optional[float] = None,
    rules: Optional[CheckoutRules] = None,
    extra_fees: Iterable[ExtraFee] = (),
    catalog: Optional[Mapping[str, ServiceOffering]] = None,
    prevalidated: bool = False,
    require_services: bool = True,
    high_value_order_limit: Optional[float] = None,
) -> CheckoutTotals:
    """
    Compute every figure the checkout shows and the order stores.

    Args:
        items: Cart line items
        applied_discount: Validated discount (or a plain amount); capped at the subtotal
        tax_percentage: VAT percentage; defaults to the cart rules
        rules: Payment split thresholds; defaults to the checkout rules
        extra_fees: Priority / domain fees from build_extra_fees
        catalog: Service catalog used to name missing required services
        prevalidated: Cart came from a guided bundle, skip the required-service gate
        require_services: Set False for live previews while the cart is being edited
        high_value_order_limit: Totals above this are flagged for a consultation

    Raises:
        MissingRequiredService: a required service is absent and the cart isn't prevalidated
    """
    items = list(items)
    extra_fees = list(extra_fees)
    if require_services:
        ensure_required_services(items, catalog, prevalidated=prevalidated)

    if tax_percentage is None:
        tax_percentage = get_cart_rules().tax_percentage

    setup_total = setup_fees_total(items)
    extra_total = sum(fee.amount for fee in extra_fees)
    subtotal = cart_subtotal(items, extra_fees)

    discount = min(max(_discount_value(applied_discount), 0.0), subtotal)
    subtotal_after_discount = subtotal - discount

    tax_amount = round_amount(subtotal_after_discount * tax_percentage / 100) if tax_percentage > 0 else 0.0
    total = subtotal_after_discount + tax_amount

    split = split_payment(total, rules)

    return CheckoutTotals(
        subtotal=subtotal,
        setup_fees_total=setup_total,
        extra_fees_total=extra_total,
        discount=discount,
        subtotal_after_discount=subtotal_after_discount,
        tax_percentage=tax_percentage,
        tax_amount=tax_amount,
        total=total,
        initial_payment=split["initial_payment"],
        remaining_payment=split["remaining_payment"],
        payment_status="partial" if split["remaining_payment"] > 0 else "pending",
        applied_code=applied_discount.code if isinstance(applied_discount, AppliedDiscount) else None,
        requires_high_value_contact=(
            high_value_order_limit is not None and total > high_value_order_limit
        ),
    )
