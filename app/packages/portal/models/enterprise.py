"""企业与服务模型：物理目录树的前两层。"""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.portal.models.base import Base, TimestampMixin


class Enterprise(TimestampMixin, Base):
    __tablename__ = "enterprises"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # 相对存储根的目录，例如 "enterprises/acme"；为空时按名称推导
    storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    services: Mapped[list["Service"]] = relationship(back_populates="enterprise")


class Service(TimestampMixin, Base):
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    enterprise_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("enterprises.id", ondelete="CASCADE"), index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    enterprise: Mapped[Enterprise] = relationship(back_populates="services")
