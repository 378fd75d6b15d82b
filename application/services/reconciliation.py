"""
Order/payment reconciliation engine.

Every order status write goes through ``ReconciliationEngine.handle``. Signals
come from four places (gateway webhooks, the client confirmation call, the
stale-pending poller and administrators) and are reduced to one contract:

1. resolve exactly one order
2. re-derive the target status from gateway truth (never from the client)
3. conditional status write keyed on the status that was read
4. one tracking ledger row in the same transaction, only if the write applied
5. best-effort notification after commit

The conditional write is the serialization point. A caller that loses the race
re-reads the order and normally ends up ALREADY_APPLIED without side effects.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

from application.dtos.payments import observation_clock
from application.ports.payment_gateway import PaymentGateway
from application.services.notification_dispatcher import NotificationDispatcher
from core.logging_config import get_logger
from domain.common.exceptions import (
    ConcurrentUpdateException,
    InvalidStatusTransitionException,
    OrderNotFoundException,
    PaymentIntentMismatchException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus
from domain.order.state_machine import TransitionDecision, decide
from domain.order.tracking import EventActor, TrackingEvent
from shared.codes.payment_codes import order_status_for_gateway_status


logger = get_logger(__name__)


class ReconcileSource(str, Enum):
    WEBHOOK = "webhook"
    CLIENT_CONFIRM = "client_confirm"
    GATEWAY_POLL = "gateway_poll"
    ADMIN = "admin"


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    IGNORED = "ignored"
    REJECTED = "rejected"


# Signals: a small tagged union consumed by ReconciliationEngine.handle


@dataclass(frozen=True)
class WebhookSignal:
    """Raw webhook delivery; verified by the gateway before anything is read."""

    headers: Mapping[str, Any]
    body: bytes
    kind: str = field(default="webhook", init=False)


@dataclass(frozen=True)
class ClientConfirmSignal:
    intent_id: str
    order_id: str
    kind: str = field(default="client_confirm", init=False)


@dataclass(frozen=True)
class GatewayPollSignal:
    intent_id: str
    order_id: str
    kind: str = field(default="gateway_poll", init=False)


@dataclass(frozen=True)
class AdminStatusSignal:
    order_id: str
    target_status: OrderStatus
    note: Optional[str] = None
    location: Optional[str] = None
    tracking_number: Optional[str] = None
    kind: str = field(default="admin", init=False)


Signal = Union[WebhookSignal, ClientConfirmSignal, GatewayPollSignal, AdminStatusSignal]


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    source: ReconcileSource
    order_id: Optional[str] = None
    previous_status: Optional[OrderStatus] = None
    current_status: Optional[OrderStatus] = None
    target_status: Optional[OrderStatus] = None
    payment_status: Optional[str] = None
    tracking_event_id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome == ReconcileOutcome.APPLIED

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "outcome": self.outcome.value,
            "source": self.source.value,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "current_status": self.current_status.value if self.current_status else None,
            "target_status": self.target_status.value if self.target_status else None,
            "payment_status": self.payment_status,
            "tracking_event_id": self.tracking_event_id,
            "reason": self.reason,
        }


_ACTOR_BY_SOURCE = {
    ReconcileSource.WEBHOOK: EventActor.GATEWAY,
    ReconcileSource.CLIENT_CONFIRM: EventActor.CUSTOMER,
    ReconcileSource.GATEWAY_POLL: EventActor.SYSTEM,
    ReconcileSource.ADMIN: EventActor.ADMIN,
}


class ReconciliationEngine:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        dispatcher: NotificationDispatcher,
        *,
        max_attempts: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._max_attempts = max(1, int(max_attempts))
        self._clock = clock or observation_clock

    async def handle(self, signal: Signal) -> ReconcileResult:
        if isinstance(signal, WebhookSignal):
            return await self._handle_webhook(signal)
        if isinstance(signal, ClientConfirmSignal):
            return await self._handle_gateway_check(
                signal.order_id, signal.intent_id, ReconcileSource.CLIENT_CONFIRM
            )
        if isinstance(signal, GatewayPollSignal):
            return await self._handle_gateway_check(
                signal.order_id, signal.intent_id, ReconcileSource.GATEWAY_POLL
            )
        if isinstance(signal, AdminStatusSignal):
            return await self._handle_admin(signal)
        raise TypeError(f"Unsupported reconciliation signal: {type(signal).__name__}")

    async def _handle_webhook(self, signal: WebhookSignal) -> ReconcileResult:
        # Raises PaymentSignatureError before any store access
        event = self._gateway.parse_webhook(dict(signal.headers), signal.body)
        intent_id = event.intent_id
        if not intent_id:
            logger.info(
                "reconcile_event_ignored",
                provider=event.provider,
                event_id=event.id,
                event_type=event.type,
            )
            return ReconcileResult(
                outcome=ReconcileOutcome.IGNORED,
                source=ReconcileSource.WEBHOOK,
                reason="unsupported_event",
            )
        logger.info(
            "reconcile_webhook_received",
            provider=event.provider,
            event_id=event.id,
            event_type=event.type,
            payment_intent_id=intent_id,
            payment_status=event.reported_status,
        )
        return await self._apply(
            source=ReconcileSource.WEBHOOK,
            intent_id=intent_id,
            target=self._target_for(event.reported_status),
            payment_status=event.reported_status,
            observed_at=event.observed_at,
        )

    async def _handle_gateway_check(
        self, order_id: str, intent_id: str, source: ReconcileSource
    ) -> ReconcileResult:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id=order_id)
        if order.payment_intent_id != intent_id:
            raise PaymentIntentMismatchException(order_id, intent_id)

        # Authoritative status comes from the gateway, outside any transaction
        intent = await self._gateway.retrieve_intent(intent_id)
        bound_order = (intent.metadata or {}).get("order_id")
        if bound_order and bound_order != order_id:
            raise PaymentIntentMismatchException(order_id, intent_id)

        return await self._apply(
            source=source,
            order_id=order_id,
            target=self._target_for(intent.status),
            payment_status=intent.status,
            observed_at=self._clock(),
        )

    async def _handle_admin(self, signal: AdminStatusSignal) -> ReconcileResult:
        target = OrderStatus(signal.target_status)
        result = await self._apply(
            source=ReconcileSource.ADMIN,
            order_id=signal.order_id,
            target=target,
            description=signal.note,
            location=signal.location,
            tracking_number=signal.tracking_number,
        )
        if result.outcome == ReconcileOutcome.REJECTED:
            raise InvalidStatusTransitionException(
                signal.order_id, result.current_status.value, target.value
            )
        return result

    @staticmethod
    def _target_for(gateway_status: Optional[str]) -> Optional[OrderStatus]:
        mapped = order_status_for_gateway_status(gateway_status)
        return OrderStatus(mapped) if mapped else None

    async def _resolve(
        self, uow: AbstractUnitOfWork, order_id: Optional[str], intent_id: Optional[str]
    ) -> Order:
        if order_id is not None:
            order = await uow.order_repository.get_by_id(order_id)
        else:
            order = await uow.order_repository.get_by_payment_intent(intent_id)
        if order is None:
            raise OrderNotFoundException(order_id=order_id, payment_intent_id=intent_id)
        return order

    async def _apply(
        self,
        *,
        source: ReconcileSource,
        target: Optional[OrderStatus],
        order_id: Optional[str] = None,
        intent_id: Optional[str] = None,
        payment_status: Optional[str] = None,
        observed_at: Optional[datetime] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        tracking_number: Optional[str] = None,
    ) -> ReconcileResult:
        for attempt in range(1, self._max_attempts + 1):
            async with self._uow_factory() as uow:
                order = await self._resolve(uow, order_id, intent_id)
                current = order.status
                base = dict(
                    source=source,
                    order_id=order.id,
                    previous_status=current,
                    current_status=current,
                    target_status=target,
                    payment_status=payment_status,
                )

                if payment_status is not None:
                    fresh = await uow.order_repository.record_payment_observation(
                        order.id, payment_status, observed_at or self._clock()
                    )
                    if not fresh:
                        logger.info(
                            "reconcile_stale_observation",
                            order_id=order.id,
                            payment_status=payment_status,
                            observed_at=(observed_at.isoformat() if observed_at else None),
                            source=source.value,
                        )
                        return ReconcileResult(outcome=ReconcileOutcome.IGNORED, reason="stale_observation", **base)

                if target is None:
                    logger.info(
                        "reconcile_unmapped_gateway_status",
                        order_id=order.id,
                        payment_status=payment_status,
                        source=source.value,
                    )
                    return ReconcileResult(outcome=ReconcileOutcome.IGNORED, reason="unmapped_gateway_status", **base)

                decision = decide(current, target, allow_superseded=source != ReconcileSource.ADMIN)
                if decision == TransitionDecision.ALREADY_APPLIED:
                    logger.info(
                        "reconcile_already_applied",
                        order_id=order.id,
                        current_status=current.value,
                        target_status=target.value,
                        source=source.value,
                    )
                    return ReconcileResult(outcome=ReconcileOutcome.ALREADY_APPLIED, **base)
                if decision == TransitionDecision.ILLEGAL:
                    logger.warning(
                        "reconcile_transition_rejected",
                        order_id=order.id,
                        current_status=current.value,
                        target_status=target.value,
                        source=source.value,
                    )
                    return ReconcileResult(
                        outcome=ReconcileOutcome.REJECTED, reason="illegal_transition", **base
                    )

                applied = await uow.order_repository.update_status(order.id, target, expected_status=current)
                if not applied:
                    logger.info(
                        "reconcile_lost_race",
                        order_id=order.id,
                        expected_status=current.value,
                        target_status=target.value,
                        source=source.value,
                        attempt=attempt,
                    )
                    continue

                event = await uow.tracking_repository.append(
                    TrackingEvent.status_change(
                        order.id,
                        target,
                        actor=_ACTOR_BY_SOURCE[source],
                        description=description,
                        location=location,
                        tracking_number=tracking_number,
                    )
                )
                await uow.commit()

            order.status = target
            logger.info(
                "order_status_transitioned",
                order_id=order.id,
                from_status=current.value,
                to_status=target.value,
                source=source.value,
                tracking_event_id=event.id,
            )
            self._dispatcher.dispatch(order, event)
            base["current_status"] = target
            return ReconcileResult(outcome=ReconcileOutcome.APPLIED, tracking_event_id=event.id, **base)

        logger.error(
            "reconcile_retries_exhausted",
            order_id=order_id,
            payment_intent_id=intent_id,
            target_status=target.value if target else None,
            source=source.value,
            attempts=self._max_attempts,
        )
        raise ConcurrentUpdateException(order_id or intent_id or "", self._max_attempts)
