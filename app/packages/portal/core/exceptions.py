"""异常处理模块：定义统一的业务异常与响应格式。"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from .logger import logger


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data: Any = None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.msg = msg
        self.data = data


class ValidationError(AppException):
    """请求在执行任何变更之前即被拒绝：父节点非法、成环、跨服务移动等。"""

    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_422_UNPROCESSABLE_ENTITY, data)


class TreeIntegrityError(ValidationError):
    """祖先链出现环路或超过最大跳数。"""


class NotFoundError(AppException):
    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_404_NOT_FOUND, data)


class PermissionDeniedError(AppException):
    def __init__(self, msg: str = "无权访问该资源", data: Any = None) -> None:
        super().__init__(msg, status.HTTP_403_FORBIDDEN, data)


class StorageUnavailableError(Exception):
    """物理存储层 I/O 失败。

    只在服务层内部流转：创建操作回滚后转换为 503，重命名/移动/删除记录日志后继续。
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
