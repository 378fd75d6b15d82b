"""
API依赖项 - 容器访问与管理端鉴权
"""
import hmac
from typing import Optional

from fastapi import Depends, Header, Request

from application.services.checkout_service import CheckoutService
from application.services.order_service import OrderApplicationService
from application.services.reconciliation import ReconciliationEngine
from core.config import settings
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from infrastructure.container import Container


logger = get_logger(__name__)


def get_container(request: Request) -> Container:
    """容器由 lifespan 创建并挂在 app.state 上"""
    return request.app.state.container


def get_reconciliation_engine(container: Container = Depends(get_container)) -> ReconciliationEngine:
    return container.reconciliation


def get_checkout_service(container: Container = Depends(get_container)) -> CheckoutService:
    return container.checkout


def get_order_service(container: Container = Depends(get_container)) -> OrderApplicationService:
    return container.orders


async def require_admin(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
) -> None:
    """管理接口鉴权

    未配置 ADMIN_API_TOKEN 时仅在 DEBUG 下放行，生产环境配置校验已保证令牌存在。
    """
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        if settings.DEBUG:
            return
        logger.error("admin_token_not_configured")
        raise UnauthorizedException("Admin access is not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        logger.warning("admin_token_rejected")
        raise UnauthorizedException("Invalid admin token")
