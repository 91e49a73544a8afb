"""
Payment ledger writer.

Money on an order is only ever changed with an in-database increment
(SET paid_amount = paid_amount + :amount); the payment status is derived
in the same UPDATE from the incremented value. Concurrent payments against
one order therefore add up instead of overwriting each other.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.core.enum_utils import get_enum_value
from cleanops.core.exceptions import NotFoundError, ValidationError
from cleanops.models.order import Order, PaymentStatus
from cleanops.models.payment import Payment, PaymentMethod
from cleanops.services.lookups import as_uuid, get_order

logger = logging.getLogger(__name__)


def derive_payment_status(paid, total) -> str:
    paid = Decimal(paid or 0)
    total = Decimal(total or 0)
    if paid > total and total > 0:
        return PaymentStatus.OVERPAID.value
    if paid >= total and paid > 0:
        return PaymentStatus.PAID.value
    if paid > 0:
        return PaymentStatus.PARTIAL.value
    return PaymentStatus.PENDING.value


def _payment_status_expr(paid_expr, total_expr):
    """SQL rendition of derive_payment_status over column expressions."""
    return case(
        (and_(paid_expr > total_expr, total_expr > 0), PaymentStatus.OVERPAID.value),
        (and_(paid_expr > 0, paid_expr >= total_expr), PaymentStatus.PAID.value),
        (paid_expr > 0, PaymentStatus.PARTIAL.value),
        else_=PaymentStatus.PENDING.value,
    )


def _to_amount(value, field: str = "amount") -> Decimal:
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid {field}: {value}")
    return amount


class LedgerService:
    """Records payments and total adjustments atomically."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _increment(self, order_id, paid_delta: Decimal, total_delta: Decimal) -> Dict[str, Any]:
        new_paid = Order.paid_amount + paid_delta
        new_total = Order.total_amount + total_delta
        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .values(
                paid_amount=new_paid,
                total_amount=new_total,
                payment_status=_payment_status_expr(new_paid, new_total),
            )
            .returning(Order.paid_amount, Order.total_amount, Order.payment_status)
            .execution_options(synchronize_session=False)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise NotFoundError(f"Order {order_id} not found")
        return {
            "paid_amount": Decimal(str(row.paid_amount)).quantize(Decimal("0.01")),
            "total_amount": Decimal(str(row.total_amount)).quantize(Decimal("0.01")),
            "payment_status": row.payment_status,
        }

    async def record_payment(
        self,
        order_id,
        amount,
        method: str = PaymentMethod.CASH.value,
        reference: Optional[str] = None,
        recorded_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Append a ledger entry and increment the order's paid amount.

        Raises:
            ValidationError: amount not positive or unknown method
            NotFoundError: order does not exist
        """
        amount = _to_amount(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        method = get_enum_value(method)
        if method not in {m.value for m in PaymentMethod}:
            raise ValidationError(f"Invalid payment method '{method}'")

        order_uuid = as_uuid(order_id, "order_id")
        try:
            totals = await self._increment(order_uuid, amount, Decimal("0"))
            payment = Payment(
                order_id=order_uuid,
                amount=amount,
                method=method,
                reference=reference,
                recorded_by=recorded_by,
            )
            self.db.add(payment)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(payment)
        logger.info(f"Recorded payment {amount} ({method}) for order {order_uuid}: {totals['payment_status']}")
        return {"payment_id": str(payment.id), "order_id": str(order_uuid), "amount": amount, **totals}

    async def adjust_total(self, order_id, delta, reason: Optional[str] = None) -> Dict[str, Any]:
        """Add delta (may be negative) to the order total."""
        delta = _to_amount(delta, "delta")
        order_uuid = as_uuid(order_id, "order_id")
        try:
            totals = await self._increment(order_uuid, Decimal("0"), delta)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"Adjusted total of order {order_uuid} by {delta}: {reason or 'no reason given'}")
        return {"order_id": str(order_uuid), **totals}

    async def get_payments(self, order_id) -> List[Payment]:
        order = await get_order(self.db, order_id)
        result = await self.db.execute(
            select(Payment).where(Payment.order_id == order.id).order_by(Payment.created_at)
        )
        return list(result.scalars().all())
