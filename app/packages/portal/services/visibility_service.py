"""可见性判定：服务归属 + 共享覆盖层。

- ``OwnershipResolver`` 只回答“主体能否访问某个服务”；
- ``VisibilityResolver`` 在其基础上叠加共享文件夹：沿祖先链（含自身）查找
  ``enterprise`` 可见或 ``services`` 包含主体服务的共享记录。
调用方未传主体（内部调用）时一律放行。
"""

from __future__ import annotations

import json
from typing import Any, Optional

from sqlalchemy import false, or_
from sqlalchemy.orm import Session

from app.packages.portal.core.config import get_settings
from app.packages.portal.core.constants import CHANNEL_SHARED_FOLDERS
from app.packages.portal.core.enums import VisibilityEnum
from app.packages.portal.core.exceptions import PermissionDeniedError
from app.packages.portal.core.logger import logger
from app.packages.portal.core.principal import Principal
from app.packages.portal.crud.enterprise import service_crud
from app.packages.portal.crud.folder import folder_crud
from app.packages.portal.crud.shared_folder import shared_folder_crud
from app.packages.portal.models.document import Document
from app.packages.portal.models.enterprise import Service
from app.packages.portal.models.folder import Folder
from app.packages.portal.models.shared_folder import SharedFolder
from app.packages.portal.services import change_signal as signal_module
from app.packages.portal.services.change_signal import change_signal


class OwnershipResolver:
    def can_access_service(self, principal: Optional[Principal], service: Service) -> bool:
        if principal is None or principal.is_super_admin:
            return True
        if service.enterprise_id != principal.enterprise_id:
            return False
        if principal.is_enterprise_wide:
            return True
        return principal.service_id is not None and service.id == principal.service_id

    def can_manage_enterprise(self, principal: Optional[Principal], enterprise_id: int) -> bool:
        """共享管理：超级管理员不限，企业管理员限本企业。"""
        if principal is None or principal.is_super_admin:
            return True
        return principal.is_admin and principal.enterprise_id == enterprise_id


def share_grants(share: SharedFolder, principal: Principal) -> bool:
    if share.enterprise_id != principal.enterprise_id:
        return False
    if share.visibility == VisibilityEnum.ENTERPRISE.value:
        return True
    if share.visibility == VisibilityEnum.SERVICES.value:
        return principal.service_id is not None and principal.service_id in share.service_ids
    return False


class VisibilityResolver:
    def __init__(self, ownership: Optional[OwnershipResolver] = None) -> None:
        self.ownership = ownership or OwnershipResolver()

    def _has_full_scope(self, principal: Optional[Principal]) -> bool:
        return principal is None or principal.is_super_admin or principal.is_enterprise_wide

    def can_view_folder(self, db: Session, principal: Optional[Principal], folder: Folder) -> bool:
        if self.ownership.can_access_service(principal, folder.service):
            return True
        if self._has_full_scope(principal):
            return False
        chain = folder_crud.ancestor_chain(db, folder, strict=False)
        shares = shared_folder_crud.list_for_folder_ids(
            db, [node.id for node in chain], enterprise_id=principal.enterprise_id
        )
        return any(share_grants(share, principal) for share in shares)

    def can_view_document(self, db: Session, principal: Optional[Principal], document: Document) -> bool:
        if principal is None:
            return True
        if document.folder_id is not None:
            folder = folder_crud.get(db, document.folder_id)
            if folder is not None:
                return self.can_view_folder(db, principal, folder)
        if document.service_id is not None:
            service = service_crud.get(db, document.service_id)
            if service is not None:
                return self.ownership.can_access_service(principal, service)
        return principal.is_super_admin or document.enterprise_id == principal.enterprise_id

    def ensure_folder_visible(self, db: Session, principal: Optional[Principal], folder: Folder) -> None:
        if not self.can_view_folder(db, principal, folder):
            raise PermissionDeniedError("无权访问该文件夹", {"folder_id": folder.id})

    def ensure_document_visible(self, db: Session, principal: Optional[Principal], document: Document) -> None:
        if not self.can_view_document(db, principal, document):
            raise PermissionDeniedError("无权访问该文档", {"document_id": document.id})

    def ensure_service_accessible(self, principal: Optional[Principal], service: Service) -> None:
        if not self.ownership.can_access_service(principal, service):
            raise PermissionDeniedError("无权访问该服务", {"service_id": service.id})

    def ensure_can_manage(self, principal: Optional[Principal], enterprise_id: int) -> None:
        if not self.ownership.can_manage_enterprise(principal, enterprise_id):
            raise PermissionDeniedError("仅管理员可管理共享文件夹")

    # ----------------------------
    # 列表过滤
    # ----------------------------
    def granted_shares(self, db: Session, principal: Principal) -> list[SharedFolder]:
        shares = shared_folder_crud.list_by_enterprise(db, principal.enterprise_id)
        return [share for share in shares if share_grants(share, principal)]

    def shared_folder_ids(self, db: Session, principal: Principal) -> set[int]:
        """被共享给主体的所有子树内文件夹 id。"""
        ids: set[int] = set()
        for share in self.granted_shares(db, principal):
            folder = folder_crud.get(db, share.folder_id)
            if folder is not None and folder.id not in ids:
                ids.update(folder_crud.subtree_ids(db, folder))
        return ids

    def document_clause(self, db: Session, principal: Optional[Principal]):
        """返回用于文档查询的过滤条件；无需过滤时返回 ``None``。"""
        if principal is None or principal.is_super_admin:
            return None
        enterprise_clause = Document.enterprise_id == principal.enterprise_id
        if principal.is_enterprise_wide:
            return enterprise_clause
        allowed = []
        if principal.service_id is not None:
            allowed.append(Document.service_id == principal.service_id)
        shared_ids = self.shared_folder_ids(db, principal)
        if shared_ids:
            allowed.append(Document.folder_id.in_(shared_ids))
        if not allowed:
            return false()
        return enterprise_clause & or_(*allowed)

    # ----------------------------
    # 可见共享列表（带短期缓存）
    # ----------------------------
    def resolve_visible(self, db: Session, principal: Principal) -> list[dict[str, Any]]:
        settings = get_settings()
        seq = change_signal.sequence(CHANNEL_SHARED_FOLDERS)
        cache_key = (
            f"visible_shared_folders:{principal.id}:{principal.enterprise_id}:"
            f"{principal.service_id}:{principal.role.value}:{seq}"
        )
        try:
            cached = signal_module.get_backend().get_value(cache_key)
        except Exception as exc:
            logger.warning("Visible share cache read failed: %s", exc)
            cached = None
        if cached:
            return json.loads(cached)

        if principal.is_super_admin:
            shares = shared_folder_crud.list_by_enterprise(db, None)
        elif principal.is_admin:
            shares = shared_folder_crud.list_by_enterprise(db, principal.enterprise_id)
        else:
            shares = self.granted_shares(db, principal)
        summaries = [
            {
                "id": share.id,
                "name": share.name,
                "folder_id": share.folder_id,
                "visibility": share.visibility,
                "services": share.service_ids,
            }
            for share in shares
        ]
        try:
            signal_module.get_backend().set_value(
                cache_key, json.dumps(summaries), settings.visibility_cache_ttl_seconds
            )
        except Exception as exc:
            logger.warning("Visible share cache write failed: %s", exc)
        return summaries


ownership_resolver = OwnershipResolver()
visibility_resolver = VisibilityResolver(ownership_resolver)
