"""文件夹模型。

- ``parent_id`` 为空表示服务根目录，每个服务至多一个（部分唯一索引保证）；
- 子树内所有节点与根目录共享同一个 ``service_id``；
- ``storage_path`` 仅是物理路径的缓存，真实路径可随时由名称链重新推导。
"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.portal.models.base import Base, TimestampMixin
from app.packages.portal.models.enterprise import Service

if TYPE_CHECKING:
    from app.packages.portal.models.shared_folder import SharedFolder


class Folder(TimestampMixin, Base):
    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    service_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("services.id", ondelete="CASCADE"), index=True, nullable=False
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("folders.id", ondelete="CASCADE"), index=True, nullable=True
    )
    storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    service: Mapped[Service] = relationship()
    # 子节点统一经 folder_crud.list_children 查询，不在此声明 children 关系
    shares: Mapped[list["SharedFolder"]] = relationship(
        back_populates="folder",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index(
            "uq_folders_service_root",
            "service_id",
            unique=True,
            postgresql_where=text("parent_id IS NULL"),
            sqlite_where=text("parent_id IS NULL"),
        ),
    )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None
