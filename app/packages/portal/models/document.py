"""文档模型：展示名可与磁盘文件名不同（文件名经过 slug 处理）。"""

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.portal.models.base import Base, TimestampMixin


class Document(TimestampMixin, Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # 为空表示“未归档”，直接挂在服务根目录下
    folder_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("folders.id", ondelete="SET NULL"), index=True, nullable=True
    )
    service_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)
    enterprise_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)
    storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)
