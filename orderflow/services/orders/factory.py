"""
Order Factory

Turns resolved catalog lines into an immutable OrderRecord: computes the
money fields, assigns the opaque order id and the short display code.

Pricing:
    subtotal       = sum(unit_price * quantity)
    tax_amount     = round(subtotal * tax_rate, 2)
    service_charge = round(subtotal * service_charge_rate, 2)
    total          = subtotal + tax_amount + service_charge
"""

import logging
import secrets
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Awaitable, Callable, Optional, Sequence

from orderflow.core.errors import CodeGenerationExhausted, ValidationFailed
from orderflow.models import OrderStatus, SourceChannel
from orderflow.services.catalog.base import ResolvedLine
from orderflow.services.orders.records import LineItem, OrderRecord

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

DISPLAY_CODE_PREFIXES = {
    SourceChannel.WEB: "WEB",
    SourceChannel.PHONE: "PH",
    SourceChannel.MESSAGING: "WA",
    SourceChannel.WALK_IN: "IN",
}

# Answers "is this code held by an active order of this restaurant?"
CodeInUse = Callable[[str, str], Awaitable[bool]]


def to_money(value) -> Decimal:
    """Round to cents, half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(
    lines: Sequence[ResolvedLine],
    tax_rate: float,
    service_charge_rate: float,
) -> tuple[tuple[LineItem, ...], Decimal, Decimal, Decimal, Decimal]:
    """Build line snapshots and (subtotal, tax, service charge, total)."""
    items = tuple(
        LineItem(
            catalog_item_id=line.item_id,
            name=line.name,
            unit_price=to_money(line.unit_price),
            quantity=line.quantity,
            line_total=to_money(Decimal(line.unit_price) * line.quantity),
        )
        for line in lines
    )
    subtotal = to_money(sum((item.line_total for item in items), Decimal("0")))
    tax_amount = to_money(subtotal * Decimal(str(tax_rate)))
    service_charge = to_money(subtotal * Decimal(str(service_charge_rate)))
    total = subtotal + tax_amount + service_charge
    return items, subtotal, tax_amount, service_charge, total


def generate_order_id() -> str:
    return uuid.uuid4().hex


def generate_display_code(source_channel: str) -> str:
    prefix = DISPLAY_CODE_PREFIXES.get(SourceChannel(source_channel), "OR")
    return f"{prefix}-{1000 + secrets.randbelow(9000)}"


class OrderFactory:
    """
    Builds new orders.

    Attributes:
        code_in_use: Async predicate checking active display codes in the store
        max_attempts: Display code generations tried before giving up
    """

    def __init__(
        self,
        code_in_use: CodeInUse,
        max_attempts: int = 10,
        code_generator: Callable[[str], str] = generate_display_code,
    ):
        self.code_in_use = code_in_use
        self.max_attempts = max_attempts
        self.code_generator = code_generator

    async def allocate_display_code(
        self,
        restaurant_id: str,
        source_channel: str,
        exclude: frozenset = frozenset(),
    ) -> str:
        """Pick a display code no active order of the restaurant holds."""
        for attempt in range(1, self.max_attempts + 1):
            code = self.code_generator(source_channel)
            if code in exclude or await self.code_in_use(restaurant_id, code):
                logger.info(f"Display code {code} taken for {restaurant_id} (attempt {attempt})")
                continue
            return code

        logger.critical(
            f"Display code generation exhausted for restaurant {restaurant_id} "
            f"after {self.max_attempts} attempts"
        )
        raise CodeGenerationExhausted(restaurant_id, self.max_attempts)

    async def create(
        self,
        restaurant_id: str,
        customer_name: str,
        contact_handle: str,
        source_channel: str,
        order_type: str,
        resolved_lines: Sequence[ResolvedLine],
        tax_rate: float,
        service_charge_rate: float,
        notes: Optional[str] = None,
        exclude_codes: frozenset = frozenset(),
    ) -> OrderRecord:
        """
        Create a new order record in status ``new``.

        Raises:
            ValidationFailed: no resolved lines
            CodeGenerationExhausted: no free display code within max_attempts
        """
        if not resolved_lines:
            raise ValidationFailed("Order must contain at least one item")

        items, subtotal, tax_amount, service_charge, total = compute_totals(
            resolved_lines, tax_rate, service_charge_rate
        )
        display_code = await self.allocate_display_code(
            restaurant_id, source_channel, exclude=exclude_codes
        )

        return OrderRecord(
            id=generate_order_id(),
            display_code=display_code,
            restaurant_id=restaurant_id,
            customer_name=customer_name,
            contact_handle=contact_handle,
            source_channel=SourceChannel(source_channel).value,
            order_type=order_type,
            line_items=items,
            subtotal=subtotal,
            tax_amount=tax_amount,
            service_charge=service_charge,
            total=total,
            notes=notes,
            created_at=datetime.now(timezone.utc),
            status=OrderStatus.NEW,
        )
