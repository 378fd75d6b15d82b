"""
组合根 - 构建并持有进程级依赖（数据库引擎、网关、通知、应用服务）

由宿主进程负责生命周期：FastAPI 在 lifespan 中创建与关闭，
Celery 任务在单次执行内创建与关闭。
"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from application.ports.notifier import Notifier
from application.ports.payment_gateway import PaymentGateway
from application.services.checkout_service import CheckoutService
from application.services.notification_dispatcher import NotificationDispatcher
from application.services.order_service import OrderApplicationService
from application.services.reconciliation import ReconciliationEngine
from core.config import Settings, settings as default_settings
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import build_engine, build_session_factory
from infrastructure.external.payments import get_payment_gateway
from infrastructure.notifications import CeleryEmailNotifier, LoggingNotifier
from infrastructure.unit_of_work import make_uow_factory


logger = get_logger(__name__)


class Container:
    def __init__(
        self,
        *,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        notifier: Notifier,
        config: Settings = default_settings,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.uow_factory = uow_factory
        self.gateway = gateway
        self.dispatcher = NotificationDispatcher(
            notifier,
            timeout_seconds=config.notifications.timeout_seconds,
            enabled=config.notifications.enabled,
        )
        self.reconciliation = ReconciliationEngine(
            uow_factory,
            gateway,
            self.dispatcher,
            max_attempts=config.orders.reconcile_max_attempts,
        )
        self.checkout = CheckoutService(
            uow_factory,
            gateway,
            number_max_attempts=config.orders.number_max_attempts,
        )
        self.orders = OrderApplicationService(uow_factory, self.dispatcher)

    async def aclose(self) -> None:
        await self.dispatcher.drain()
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("container_closed")


def build_container(config: Settings = default_settings, *, provider: Optional[str] = None) -> Container:
    """按配置构建生产依赖"""
    engine = build_engine(config.database.url)
    session_factory = build_session_factory(engine)
    gateway = get_payment_gateway(provider)
    if config.notifications.enabled and config.redis.url:
        notifier: Notifier = CeleryEmailNotifier()
    else:
        notifier = LoggingNotifier()
    logger.info(
        "container_built",
        provider=gateway.provider,
        notifier=type(notifier).__name__,
    )
    return Container(
        uow_factory=make_uow_factory(session_factory),
        gateway=gateway,
        notifier=notifier,
        config=config,
        engine=engine,
    )
