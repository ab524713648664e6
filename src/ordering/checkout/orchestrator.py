"""Order orchestrator: places orders and settles their payments.

The orchestrator coordinates three parties: the stock service (reservations),
the payment processor, and the Order/Payment aggregates. It follows the
orchestration saga style:

    create_order:    reserve stock per item → persist Order + Payment
                     (any reservation failure releases what was taken)
    confirm_payment: processor confirm → Payment PAID, Order CONFIRMED
    cancel_order:    Order/Payment CANCELLED → release stock → refund if paid
    cancel_order_items: items CANCELLED → release their stock → partial refund
    fail_payment:    Payment FAILED, Order CANCELLED → release stock

State changes always happen inside a single command processed while holding
the order's lock. Calls to the stock service and the processor happen outside
the lock, and the command re-validates state when the lock is taken again.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

import structlog
from protean.utils.globals import current_domain

from ordering.checkout.locks import OrderLockRegistry, get_lock_registry
from ordering.checkout.retry import RetryPolicy, call_with_retry
from ordering.config import CheckoutSettings, get_settings
from ordering.errors import (
    GatewayError,
    GatewayUnavailable,
    IntegrityError,
    PaymentStateConflict,
    ReleaseFailed,
    StockUnavailable,
)
from ordering.gateway import get_gateway
from ordering.gateway.port import PaymentGateway, PaymentSession
from ordering.order.cancellation import CancelOrder, CancelOrderItems, FailOrderPayment
from ordering.order.confirmation import ConfirmPayment
from ordering.order.order import Order, OrderStatus, validate_order_lines, validate_shipping_address
from ordering.order.placement import PlaceOrder
from ordering.payment.payment import Payment, PaymentStatus
from ordering.payment.queries import payment_for_order
from ordering.payment.reconciliation import RecordRefund
from ordering.stock import get_stock_client
from ordering.stock.port import StockReservationClient

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PlacedOrder:
    order: Order
    payment: Payment


class OrderOrchestrator:
    def __init__(
        self,
        stock: StockReservationClient | None = None,
        gateway: PaymentGateway | None = None,
        locks: OrderLockRegistry | None = None,
        settings: CheckoutSettings | None = None,
    ) -> None:
        self.stock = stock or get_stock_client()
        self.gateway = gateway or get_gateway()
        self.locks = locks or get_lock_registry()
        self.settings = settings or get_settings()
        self.retry_policy = RetryPolicy.from_settings(self.settings)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_order(self, order_id: str) -> Order:
        return current_domain.repository_for(Order).get(str(order_id))

    def get_payment(self, order_id: str) -> Payment:
        return payment_for_order(str(order_id))

    def _load(self, order_id: str) -> tuple[Order, Payment]:
        return self.get_order(order_id), self.get_payment(order_id)

    # -------------------------------------------------------------------
    # Placement
    # -------------------------------------------------------------------
    def create_order(
        self,
        user_id: str,
        shipping_address: dict,
        items: list[dict],
        cart_item_ids: list[str] | None = None,
    ) -> PlacedOrder:
        """Reserve stock for every item, then persist the order with a READY payment.

        Nothing is persisted unless every reservation succeeded. When one
        fails, the reservations already taken are released and the failure
        is raised as ``StockUnavailable``.
        """
        lines = validate_order_lines(items)
        validate_shipping_address(shipping_address)

        order_id = str(uuid4())
        tokens: list[str] = []

        logger.info("Placing order", order_id=order_id, user_id=str(user_id), item_count=len(lines))

        try:
            for line in lines:
                reservation = self.stock.reserve(
                    product_id=line["product_id"],
                    variant_id=line["variant_id"],
                    quantity=line["quantity"],
                    order_id=order_id,
                )
                tokens.append(reservation.token)
                line["reservation_token"] = reservation.token

            with self.locks.hold(order_id):
                current_domain.process(
                    PlaceOrder(
                        order_id=order_id,
                        user_id=str(user_id),
                        items=json.dumps(lines),
                        shipping_address=json.dumps(shipping_address),
                        cart_item_ids=json.dumps(list(cart_item_ids or [])),
                        pg_provider=self.settings.pg_provider,
                    ),
                    asynchronous=False,
                )
        except StockUnavailable as exc:
            logger.warning(
                "Stock reservation failed, compensating",
                order_id=order_id,
                product_id=exc.context.get("product_id"),
                reserved_count=len(tokens),
            )
            self._release_reservations(order_id, tokens)
            raise
        except Exception:
            logger.exception("Order placement failed, compensating", order_id=order_id, reserved_count=len(tokens))
            self._release_reservations(order_id, tokens)
            raise

        order, payment = self._load(order_id)
        return PlacedOrder(order=order, payment=payment)

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def prepare_payment(self, order_id: str, amount: int) -> PaymentSession:
        """Check the amount the client is about to pay and describe the checkout session."""
        order, payment = self._load(order_id)

        if amount != order.total_amount or payment.amount != order.total_amount:
            raise IntegrityError(
                "Payment amount does not match the order total",
                order_id=str(order_id),
                expected=order.total_amount,
                requested=amount,
            )

        current = PaymentStatus(payment.status)
        if not current.can_pay():
            raise PaymentStateConflict({"status": [f"Cannot prepare a payment in {current.value} state"]})

        first_title = order.items[0].product_title if order.items else ""
        order_name = first_title or f"Order {order.order_number}"
        if len(order.items) > 1:
            order_name = f"{order_name} and {len(order.items) - 1} more"

        return self.gateway.prepare(
            order_id=str(order.id),
            amount=order.total_amount,
            order_name=order_name,
            customer_name=order.shipping_address.recipient_name if order.shipping_address else "",
        )

    def confirm_payment(self, order_id: str, payment_key: str, amount: int | None = None) -> Order:
        """Confirm a payment with the processor and confirm the order.

        Confirming a PAID payment returns the order unchanged. A mismatch
        between the caller's amount, the processor's approved amount and the
        payment amount voids the capture and raises ``IntegrityError`` without
        touching order or payment state.
        """
        order_id = str(order_id)

        with self.locks.hold(order_id):
            order, payment = self._load(order_id)
            current = PaymentStatus(payment.status)
            if current is PaymentStatus.PAID:
                logger.info("Payment already confirmed", order_id=order_id)
                return order
            if not current.can_pay():
                raise PaymentStateConflict({"status": [f"Cannot confirm a payment in {current.value} state"]})
            if amount is not None and amount != payment.amount:
                raise IntegrityError(
                    "Requested amount does not match the payment amount",
                    order_id=order_id,
                    expected=payment.amount,
                    requested=amount,
                )
            expected_amount = payment.amount

        result = call_with_retry(
            self.gateway.confirm,
            payment_key=payment_key,
            order_id=order_id,
            amount=expected_amount,
            policy=self.retry_policy,
            retry_on=(GatewayUnavailable,),
            operation="gateway.confirm",
        )

        if result.approved_amount != expected_amount:
            logger.error(
                "Processor approved a different amount",
                order_id=order_id,
                expected=expected_amount,
                approved=result.approved_amount,
            )
            self._void_capture(
                order_id,
                result.payment_key,
                result.approved_amount,
                reason="Processor approved an amount different from the order total",
            )
            raise IntegrityError(
                "Approved amount does not match the payment amount",
                order_id=order_id,
                expected=expected_amount,
                approved=result.approved_amount,
            )

        try:
            with self.locks.hold(order_id):
                current_domain.process(
                    ConfirmPayment(
                        order_id=order_id,
                        payment_key=result.payment_key,
                        approved_amount=result.approved_amount,
                        approved_at=result.approved_at,
                    ),
                    asynchronous=False,
                )
        except PaymentStateConflict:
            logger.warning("Payment changed state during confirmation, voiding capture", order_id=order_id)
            self._void_capture(order_id, result.payment_key, result.approved_amount)
            raise

        return self.get_order(order_id)

    def _void_capture(
        self,
        order_id: str,
        payment_key: str,
        amount: int,
        reason: str = "Order was cancelled before payment confirmation completed",
    ) -> None:
        """Give back money captured for a payment the order can no longer accept."""
        try:
            call_with_retry(
                self.gateway.cancel_payment,
                order_id=order_id,
                payment_key=payment_key,
                cancel_amount=amount,
                order_item_ids=self.get_order(order_id).item_ids(),
                reason=reason,
                policy=self.retry_policy,
                retry_on=(GatewayUnavailable,),
                operation="gateway.cancel_payment",
            )
        except GatewayError as exc:
            logger.error(
                "Could not void captured payment, manual refund required",
                order_id=order_id,
                payment_key=payment_key,
                amount=amount,
                error=str(exc),
            )

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel_order(self, order_id: str, reason: str) -> Order:
        """Cancel the order, release its stock and refund a captured payment.

        Cancelling an already cancelled order is a no-op. Stock release and
        refund failures are logged and never undo the cancellation; a refund
        that could not be completed leaves the payment awaiting reconciliation.
        """
        order_id = str(order_id)

        with self.locks.hold(order_id):
            order = self.get_order(order_id)
            if OrderStatus(order.status) is OrderStatus.CANCELLED:
                logger.info("Order already cancelled", order_id=order_id)
                return order

            order.assert_cancellable(self.settings.cancel_grace_period)
            tokens = [item.reservation_token for item in order.active_items() if item.reservation_token]
            current_domain.process(CancelOrder(order_id=order_id, reason=reason), asynchronous=False)

        payment = self.get_payment(order_id)
        self._release_reservations(order_id, tokens)
        if payment.reconciliation_pending:
            self.refund(order_id)

        return self.get_order(order_id)

    def cancel_order_items(self, order_id: str, item_ids: list[str], reason: str) -> Order:
        """Cancel some items of a confirmed order, release their stock and refund their subtotal.

        Selecting every remaining item cancels the whole order. As with
        ``cancel_order``, release and refund failures never undo the cancellation.
        """
        order_id = str(order_id)
        item_ids = [str(item_id) for item_id in item_ids]

        with self.locks.hold(order_id):
            order = self.get_order(order_id)
            tokens = [
                item.reservation_token
                for item in order.active_items()
                if str(item.id) in item_ids and item.reservation_token
            ]
            current_domain.process(
                CancelOrderItems(order_id=order_id, item_ids=json.dumps(item_ids), reason=reason),
                asynchronous=False,
            )

        payment = self.get_payment(order_id)
        self._release_reservations(order_id, tokens)
        if payment.reconciliation_pending:
            self.refund(order_id, reason=reason)

        return self.get_order(order_id)

    def fail_payment(self, order_id: str, fail_code: str, fail_message: str) -> Order:
        """Record a processor-side payment failure and cancel the order."""
        order_id = str(order_id)

        with self.locks.hold(order_id):
            order, payment = self._load(order_id)
            current = PaymentStatus(payment.status)
            if current is PaymentStatus.FAILED:
                logger.info("Payment already failed", order_id=order_id)
                return order
            if not current.can_fail():
                raise PaymentStateConflict({"status": [f"Cannot fail a payment in {current.value} state"]})

            current_domain.process(
                FailOrderPayment(order_id=order_id, fail_code=fail_code, fail_message=fail_message),
                asynchronous=False,
            )

        self._release_reservations(order_id, order.reservation_tokens())
        return self.get_order(order_id)

    def refund(self, order_id: str, reason: str | None = None) -> bool:
        """Ask the processor to refund what is owed on a payment and record the outcome.

        Returns True when the refund was acknowledged. Processor failures are
        logged and leave the payment awaiting reconciliation.
        """
        order_id = str(order_id)
        order, payment = self._load(order_id)
        if not payment.reconciliation_pending:
            return True

        try:
            result = call_with_retry(
                self.gateway.cancel_payment,
                order_id=order_id,
                payment_key=payment.payment_key,
                cancel_amount=payment.outstanding_refund,
                order_item_ids=order.cancelled_item_ids(),
                reason=reason or order.cancellation_reason or "Order items cancelled",
                policy=self.retry_policy,
                retry_on=(GatewayUnavailable,),
                operation="gateway.cancel_payment",
            )
        except GatewayError as exc:
            logger.error(
                "Refund failed, payment left for reconciliation",
                order_id=order_id,
                amount=payment.outstanding_refund,
                error=str(exc),
            )
            return False

        with self.locks.hold(order_id):
            current_domain.process(
                RecordRefund(
                    order_id=order_id,
                    amount=result.cancel_amount,
                    transaction_key=result.transaction_key,
                    cancelled_at=result.cancelled_at or datetime.now(UTC),
                ),
                asynchronous=False,
            )
        return True

    # -------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------
    def _release_reservations(self, order_id: str, tokens: list[str]) -> None:
        # Reservations that cannot be released expire on the stock service side
        for token in tokens:
            try:
                call_with_retry(
                    self.stock.release,
                    token,
                    policy=self.retry_policy,
                    retry_on=(ReleaseFailed,),
                    operation="stock.release",
                )
            except ReleaseFailed as exc:
                logger.error(
                    "Stock release failed, leaving reservation to expire",
                    order_id=order_id,
                    token=token,
                    error=str(exc),
                )
