"""文档门户业务包：企业/服务/文件夹/文档目录树与共享可见性。"""

from app.packages.types import AppPackage

from .api.v1 import api_router
from .core.config import get_settings
from .core.exceptions import generic_exception_handler, http_exception_handler
from .core.logger import logger, setup_logging
from .core.responses import create_response
from .db.init_db import init_db
from .services import change_signal
from .services.storage_backends import get_storage


def init_backends() -> None:
    """构造物理存储后端并连接变更通知存储（Redis 不可用时回退内存）。"""
    storage = get_storage()
    signal_backend = change_signal.get_backend()
    logger.info(
        "Backends ready: storage=%s, change signal=%s",
        type(storage).__name__,
        type(signal_backend).__name__,
    )


package = AppPackage(
    name="portal",
    title="DocVault",
    api_router=api_router,
    get_settings=get_settings,
    setup_logging=setup_logging,
    logger=logger,
    init_db=init_db,
    init_backends=init_backends,
    create_response=create_response,
    http_exception_handler=http_exception_handler,
    generic_exception_handler=generic_exception_handler,
)

__all__ = ["package", "api_router", "get_settings", "init_backends"]
