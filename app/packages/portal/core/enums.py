"""枚举定义：约束角色与共享可见范围的可选值。"""

from enum import Enum


class RoleEnum(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    AGENT = "agent"


class VisibilityEnum(str, Enum):
    """共享文件夹的可见范围。"""

    ENTERPRISE = "enterprise"
    SERVICES = "services"


class DocumentEventEnum(str, Enum):
    """文档变更事件类型，随 ``documents_last_event`` 一起下发。"""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
