"""业务包元数据定义：主应用据此装配路由、日志、数据库与外部后端。"""

from __future__ import annotations

from dataclasses import dataclass
from logging import Logger
from typing import Any, Awaitable, Callable

from fastapi import APIRouter
from starlette.responses import Response

ExceptionHandler = Callable[..., Awaitable[Response]]


@dataclass(frozen=True)
class AppPackage:
    """一个业务包交给主应用的全部入口。

    ``init_backends`` 在启动阶段预热物理存储与变更通知后端，
    使存储配置错误在启动时即暴露，而不是拖到第一次上传。
    """

    name: str
    title: str
    api_router: APIRouter
    get_settings: Callable[[], Any]
    setup_logging: Callable[[], None]
    logger: Logger
    init_db: Callable[[], None]
    init_backends: Callable[[], None]
    create_response: Callable[..., dict]
    http_exception_handler: ExceptionHandler
    generic_exception_handler: ExceptionHandler
