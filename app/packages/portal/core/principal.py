"""访问主体与企业数据域。

主体来自上游认证系统签发的令牌声明：
- ``super_admin``：平台运维，跨企业不受限；
- ``admin``：企业级，可访问本企业全部服务；
- ``agent``：服务级，仅访问自身服务，除非具备 ``can_view_all_services``。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy import false
from sqlalchemy.orm import Query

from .enums import RoleEnum


@dataclass(frozen=True)
class Principal:
    id: int
    role: RoleEnum
    enterprise_id: Optional[int]
    service_id: Optional[int] = None
    can_view_all_services: bool = False

    @property
    def is_super_admin(self) -> bool:
        return self.role == RoleEnum.SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role in (RoleEnum.ADMIN, RoleEnum.SUPER_ADMIN)

    @property
    def is_enterprise_wide(self) -> bool:
        """管理员或具备“查看所有服务”能力的坐席，按整个企业判定可达性。"""
        return self.role == RoleEnum.ADMIN or (self.role == RoleEnum.AGENT and self.can_view_all_services)

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Principal":
        """从令牌声明构造主体，字段缺失或非法时抛出 ``ValueError``。"""
        raw_id = claims.get("user_id", claims.get("sub"))
        if raw_id is None:
            raise ValueError("missing user id")
        role = RoleEnum(str(claims.get("role") or RoleEnum.AGENT.value))
        enterprise_id = claims.get("enterprise_id")
        service_id = claims.get("service_id")
        return cls(
            id=int(raw_id),
            role=role,
            enterprise_id=int(enterprise_id) if enterprise_id is not None else None,
            service_id=int(service_id) if service_id is not None else None,
            can_view_all_services=bool(claims.get("can_view_all_services", False)),
        )

    def to_claims(self) -> dict[str, Any]:
        return {
            "user_id": self.id,
            "role": self.role.value,
            "enterprise_id": self.enterprise_id,
            "service_id": self.service_id,
            "can_view_all_services": self.can_view_all_services,
        }


def apply_enterprise_scope(query: Query, model: Any, principal: Optional[Principal]) -> Query:
    """对查询按企业维度过滤；无主体（内部调用）或超级管理员时保持原查询。"""
    if principal is None or principal.is_super_admin:
        return query
    if not hasattr(model, "enterprise_id"):
        return query
    if principal.enterprise_id is None:
        # 未归属任何企业的主体看不到企业数据
        return query.filter(false())
    return query.filter(model.enterprise_id == principal.enterprise_id)
