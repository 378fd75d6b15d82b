"""
结账应用服务 - 创建订单并发起支付意图

流程：
1. 校验金额并在只读事务中生成订单草稿（含订单号）
2. 向网关创建支付意图（事务外）
3. 在写事务中持久化订单与首条跟踪事件

网关失败时不落库，结账直接失败并提示可重试。
"""
from __future__ import annotations

from typing import Callable

from application.dtos.orders import CheckoutResultDTO, CreateOrderPaymentDTO
from application.dtos.payments import CreateIntent, observation_clock
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import CustomerSnapshot, OrderItem
from domain.order.money import from_minor_units, to_minor_units
from domain.order.service import OrderDomainService


logger = get_logger(__name__)


class CheckoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        *,
        number_max_attempts: int = 10,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._number_max_attempts = number_max_attempts

    async def create_order_payment(self, payload: CreateOrderPaymentDTO) -> CheckoutResultDTO:
        currency = payload.currency
        items = [
            OrderItem(
                product_id=item.product_id,
                product_name=item.product_name,
                unit_price=to_minor_units(item.product_price, currency, field="items.product_price"),
                quantity=item.quantity,
                product_image=item.product_image,
            )
            for item in payload.items
        ]
        info = payload.customer_info
        customer = CustomerSnapshot(
            name=info.name,
            email=str(info.email),
            phone=info.phone,
            address=info.address,
            city=info.city,
            postal_code=info.postal_code,
            country=info.country,
        )

        async with self._uow_factory(readonly=True) as uow:
            domain_service = OrderDomainService(
                uow.order_repository, number_max_attempts=self._number_max_attempts
            )
            order = await domain_service.draft_order(
                currency=currency,
                items=items,
                customer=customer,
                shipping_cost=to_minor_units(payload.shipping_cost, currency, field="shipping_cost"),
                total=to_minor_units(payload.amount, currency, field="amount"),
                notes=payload.notes,
            )

        logger.info(
            "checkout_intent_request",
            order_id=order.id,
            order_number=order.order_number,
            amount=order.total,
            currency=order.currency,
            provider=self._gateway.provider,
        )
        intent = await self._gateway.create_intent(
            CreateIntent(
                amount=order.total,
                currency=order.currency,
                metadata={
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "customer_email": customer.email,
                },
                idempotency_key=f"order-{order.id}",
            )
        )
        order.attach_payment_intent(intent.intent_id)
        order.payment_status = intent.status
        order.payment_status_observed_at = observation_clock()

        async with self._uow_factory() as uow:
            domain_service = OrderDomainService(
                uow.order_repository,
                uow.tracking_repository,
                number_max_attempts=self._number_max_attempts,
            )
            order, _ = await domain_service.place_order(order)

        logger.info(
            "checkout_order_created",
            order_id=order.id,
            order_number=order.order_number,
            payment_intent_id=intent.intent_id,
        )
        return CheckoutResultDTO(
            order_id=order.id,
            order_number=order.order_number,
            payment_intent_id=intent.intent_id,
            client_secret=intent.client_secret,
            amount=from_minor_units(order.total, order.currency),
            currency=order.currency,
            status=order.status,
        )
