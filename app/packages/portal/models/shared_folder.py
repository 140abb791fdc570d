"""共享文件夹：在归属服务之外公开一棵子树的覆盖层。"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.portal.core.enums import VisibilityEnum
from app.packages.portal.models.base import Base, TimestampMixin, shared_folder_services
from app.packages.portal.models.enterprise import Service

if TYPE_CHECKING:
    from app.packages.portal.models.folder import Folder


class SharedFolder(TimestampMixin, Base):
    __tablename__ = "shared_folders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    enterprise_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    folder_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("folders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    # 共享时拷贝的文件夹名称，重命名时同步
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    visibility: Mapped[str] = mapped_column(
        String(32), nullable=False, default=VisibilityEnum.ENTERPRISE.value
    )
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    folder: Mapped["Folder"] = relationship(back_populates="shares")
    services: Mapped[list[Service]] = relationship(secondary=shared_folder_services)

    @property
    def service_ids(self) -> list[int]:
        return sorted(service.id for service in self.services)
