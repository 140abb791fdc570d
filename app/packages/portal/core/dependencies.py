"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.portal.core.constants import ACCESS_TOKEN_TYPE
from app.packages.portal.core.logger import set_principal_id
from app.packages.portal.core.principal import Principal
from app.packages.portal.core.security import decode_token
from app.packages.portal.db import session as db_session
from app.packages.portal.services.storage_backends import StorageBackend, get_storage

security_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_storage_backend() -> StorageBackend:
    """返回当前配置的物理存储后端。"""
    return get_storage()


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Principal:
    """解析 ``Authorization`` 头部并返回访问主体，不存在或非法时抛出 401。"""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="缺少认证信息")

    if credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="认证类型无效")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效或已过期")

    try:
        principal = Principal.from_claims(payload)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效") from exc
    set_principal_id(principal.id)
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """共享管理仅对企业管理员与超级管理员开放。"""
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="仅管理员可管理共享文件夹")
    return principal
