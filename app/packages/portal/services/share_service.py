"""共享文件夹服务：新建并共享、关联已有文件夹、修改共享范围、取消共享。"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.packages.portal.core.constants import CHANNEL_SHARED_FOLDERS
from app.packages.portal.core.enums import VisibilityEnum
from app.packages.portal.core.exceptions import NotFoundError, ValidationError
from app.packages.portal.core.logger import logger
from app.packages.portal.core.principal import Principal
from app.packages.portal.crud.enterprise import service_crud
from app.packages.portal.crud.folder import folder_crud
from app.packages.portal.crud.shared_folder import shared_folder_crud
from app.packages.portal.models.enterprise import Service
from app.packages.portal.models.shared_folder import SharedFolder
from app.packages.portal.services.change_signal import change_signal
from app.packages.portal.services.storage_backends import StorageBackend
from app.packages.portal.services.tree_service import folder_service
from app.packages.portal.services.visibility_service import visibility_resolver


def _parse_visibility(value: str | VisibilityEnum) -> VisibilityEnum:
    try:
        return VisibilityEnum(value)
    except ValueError as exc:
        raise ValidationError("不支持的共享范围", {"visibility": value}) from exc


def _resolve_services(
    db: Session, enterprise_id: int, visibility: VisibilityEnum, service_ids: Optional[list[int]]
) -> list[Service]:
    """``services`` 可见时只保留同企业的服务（允许为空）；其余可见范围清空服务集合。"""
    if visibility != VisibilityEnum.SERVICES:
        return []
    return service_crud.filter_ids_in_enterprise(db, enterprise_id, service_ids or [])


class ShareService:
    def get_share_or_404(self, db: Session, share_id: int) -> SharedFolder:
        share = shared_folder_crud.get(db, share_id)
        if share is None:
            raise NotFoundError("共享文件夹不存在", {"shared_folder_id": share_id})
        return share

    def create_shared_folder(
        self,
        db: Session,
        storage: StorageBackend,
        *,
        name: str,
        host_service_id: int,
        visibility: str | VisibilityEnum,
        service_ids: Optional[list[int]] = None,
        parent_id: Optional[int] = None,
        principal: Optional[Principal] = None,
    ) -> SharedFolder:
        """在宿主服务根目录（或指定父目录）下新建文件夹并共享。"""
        host = folder_service.get_service(db, host_service_id)
        visibility_resolver.ensure_can_manage(principal, host.enterprise_id)
        parsed = _parse_visibility(visibility)
        folder = folder_service.create_folder(
            db, storage, name=name, parent_id=parent_id, service_id=host_service_id
        )
        return self.share_folder(db, folder.id, parsed, service_ids, principal=principal)

    def share_folder(
        self,
        db: Session,
        folder_id: int,
        visibility: str | VisibilityEnum,
        service_ids: Optional[list[int]] = None,
        *,
        principal: Optional[Principal] = None,
    ) -> SharedFolder:
        """共享已有文件夹，不触碰物理存储。"""
        folder = folder_service.get_folder_or_404(db, folder_id)
        enterprise_id = folder.service.enterprise_id
        visibility_resolver.ensure_can_manage(principal, enterprise_id)
        parsed = _parse_visibility(visibility)
        services = _resolve_services(db, enterprise_id, parsed, service_ids)

        share = SharedFolder(
            enterprise_id=enterprise_id,
            folder_id=folder.id,
            name=folder.name,
            visibility=parsed.value,
            created_by=principal.id if principal is not None else None,
        )
        share.services = services
        shared_folder_crud.save(db, share)
        logger.info(
            "Shared folder %s as %s (%s)",
            folder.id,
            share.id,
            parsed.value,
            extra={"folder_id": folder.id, "share_id": share.id, "enterprise_id": enterprise_id},
        )
        change_signal.increment(CHANNEL_SHARED_FOLDERS)
        return share

    def update_share(
        self,
        db: Session,
        storage: StorageBackend,
        share_id: int,
        *,
        name: Optional[str] = None,
        visibility: Optional[str | VisibilityEnum] = None,
        service_ids: Optional[list[int]] = None,
        principal: Optional[Principal] = None,
    ) -> SharedFolder:
        share = self.get_share_or_404(db, share_id)
        visibility_resolver.ensure_can_manage(principal, share.enterprise_id)
        parsed = _parse_visibility(visibility) if visibility is not None else VisibilityEnum(share.visibility)
        services: Optional[list[Service]] = None
        if parsed != VisibilityEnum.SERVICES:
            services = []
        elif service_ids is not None or parsed.value != share.visibility:
            services = _resolve_services(db, share.enterprise_id, parsed, service_ids)

        if name is not None:
            folder = folder_crud.get(db, share.folder_id)
            if folder is None:
                share.name = name.strip() or share.name
            elif name.strip() != folder.name:
                # 经由文件夹重命名路径完成，同时同步共享名称
                folder_service.rename_folder(db, storage, folder.id, name, signal_shares=False)
                db.refresh(share)

        share.visibility = parsed.value
        if services is not None:
            share.services = services
        db.commit()
        db.refresh(share)
        logger.info("Updated shared folder %s (%s)", share.id, share.visibility)
        change_signal.increment(CHANNEL_SHARED_FOLDERS)
        return share

    def unshare_folder(
        self,
        db: Session,
        storage: StorageBackend,
        share_id: int,
        *,
        principal: Optional[Principal] = None,
    ) -> None:
        """删除共享对应的整棵子树；文件夹已不存在时只删除共享记录。"""
        share = self.get_share_or_404(db, share_id)
        visibility_resolver.ensure_can_manage(principal, share.enterprise_id)
        folder = folder_crud.get(db, share.folder_id)
        if folder is None:
            shared_folder_crud.hard_delete(db, share)
            logger.info("Removed dangling shared folder %s", share_id)
            change_signal.increment(CHANNEL_SHARED_FOLDERS)
            return
        folder_service.delete_folder(db, storage, folder.id)


share_service = ShareService()
