"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.portal.models.document import Document
from app.packages.portal.models.enterprise import Enterprise, Service
from app.packages.portal.models.folder import Folder
from app.packages.portal.models.shared_folder import SharedFolder

__all__ = [
    "Document",
    "Enterprise",
    "Folder",
    "Service",
    "SharedFolder",
]
