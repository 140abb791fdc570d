"""文件夹树服务：在关系型目录树与物理目录之间同步创建、重命名、移动与删除。

失败策略：
- 创建：先插入行拿到 id，物理目录创建失败则回滚并返回 503；
- 重命名/移动：先尝试物理移动，失败只记日志，数据库照常提交；
- 删除：逐项尽力删除物理文件与目录，数据库行总会被删除。
每次成功提交后递增一次对应通道的变更序号；校验失败不递增。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.packages.portal.core.config import get_settings
from app.packages.portal.core.constants import (
    CHANNEL_DOCUMENTS,
    CHANNEL_FOLDERS,
    CHANNEL_SHARED_FOLDERS,
    HTTP_STATUS_SERVICE_UNAVAILABLE,
)
from app.packages.portal.core.enums import DocumentEventEnum, RoleEnum
from app.packages.portal.core.exceptions import (
    AppException,
    NotFoundError,
    PermissionDeniedError,
    StorageUnavailableError,
    ValidationError,
)
from app.packages.portal.core.logger import logger
from app.packages.portal.core.principal import Principal
from app.packages.portal.crud.document import document_crud
from app.packages.portal.crud.enterprise import service_crud
from app.packages.portal.crud.folder import folder_crud
from app.packages.portal.models.document import Document
from app.packages.portal.models.enterprise import Service
from app.packages.portal.models.folder import Folder
from app.packages.portal.services.change_signal import change_signal
from app.packages.portal.services.path_resolver import PathResolver, folder_segment
from app.packages.portal.services.storage_backends import StorageBackend
from app.packages.portal.services.visibility_service import visibility_resolver
from app.packages.portal.utils.path_utils import join_path, resolve_collision, slugify


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("文件夹名称不能为空")
    if "/" in cleaned or "\\" in cleaned:
        raise ValidationError("文件夹名称不能包含路径分隔符")
    return cleaned


class FolderService:
    """文件夹的查询与变更。"""

    # ----------------------------
    # 查询
    # ----------------------------
    def get_service(self, db: Session, service_id: int) -> Service:
        service = service_crud.get(db, service_id)
        if service is None:
            raise NotFoundError("服务不存在", {"service_id": service_id})
        return service

    def get_folder_or_404(self, db: Session, folder_id: int) -> Folder:
        folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise NotFoundError("文件夹不存在", {"folder_id": folder_id})
        return folder

    def get_folder(self, db: Session, folder_id: int, principal: Optional[Principal] = None) -> Folder:
        folder = self.get_folder_or_404(db, folder_id)
        visibility_resolver.ensure_folder_visible(db, principal, folder)
        return folder

    def ensure_service_root(self, db: Session, storage: StorageBackend, service_id: int) -> Folder:
        """返回服务根目录，首次访问时创建，并固化企业/服务目录、补建物理目录。"""
        service = self.get_service(db, service_id)
        root, created = folder_crud.get_or_create_root(db, service)
        resolver = PathResolver(db, storage)
        changed = resolver.persist_base_paths(service)
        if not root.storage_path:
            root.storage_path = service.storage_path
            changed = True
        if created or changed:
            try:
                storage.make_dir(root.storage_path)
            except StorageUnavailableError as exc:
                logger.warning("Could not mirror root directory %s: %s", root.storage_path, exc)
            db.commit()
            db.refresh(root)
        if created:
            logger.info("Created root folder %s for service %s at %s", root.id, service.id, root.storage_path)
            change_signal.increment(CHANNEL_FOLDERS)
        return root

    def list_roots(
        self, db: Session, storage: StorageBackend, service_id: int, principal: Optional[Principal] = None
    ) -> list[Folder]:
        service = self.get_service(db, service_id)
        if principal is not None and not principal.is_super_admin and service.enterprise_id != principal.enterprise_id:
            raise PermissionDeniedError("无权访问该服务", {"service_id": service_id})
        root = self.ensure_service_root(db, storage, service_id)
        if not visibility_resolver.can_view_folder(db, principal, root):
            return []
        return [root]

    def list_children(
        self,
        db: Session,
        parent_id: int,
        principal: Optional[Principal] = None,
        *,
        limit: Optional[int] = None,
    ) -> list[Folder]:
        """列出直接子文件夹，仅保留主体可见的节点。"""
        settings = get_settings()
        if limit is None or limit <= 0:
            limit = settings.folders_list_limit_default
        limit = min(limit, settings.folders_list_limit_max)
        self.get_folder_or_404(db, parent_id)
        children = folder_crud.list_children(db, parent_id, limit=limit)
        if principal is None:
            return children
        return [child for child in children if visibility_resolver.can_view_folder(db, principal, child)]

    # ----------------------------
    # 变更
    # ----------------------------
    def create_folder(
        self,
        db: Session,
        storage: StorageBackend,
        *,
        name: str,
        parent_id: Optional[int] = None,
        service_id: Optional[int] = None,
        principal: Optional[Principal] = None,
    ) -> Folder:
        name = _clean_name(name)
        if parent_id is not None:
            parent = self.get_folder_or_404(db, parent_id)
            if service_id is not None and service_id != parent.service_id:
                raise ValidationError("父文件夹不属于指定的服务", {"parent_id": parent_id, "service_id": service_id})
        elif service_id is not None:
            parent = self.ensure_service_root(db, storage, service_id)
        else:
            raise ValidationError("必须指定父文件夹或服务")
        visibility_resolver.ensure_folder_visible(db, principal, parent)

        resolver = PathResolver(db, storage)
        folder = folder_crud.create(
            db,
            {"name": name, "parent_id": parent.id, "service_id": parent.service_id},
            auto_commit=False,
        )
        try:
            parent_dir = resolver.locate(parent)
            path = resolve_collision(parent_dir, folder_segment(folder), storage.exists, folder.id)
            storage.make_dir(path)
        except StorageUnavailableError as exc:
            db.rollback()
            logger.error("Folder creation aborted, storage unavailable: %s", exc)
            raise AppException("存储不可用，文件夹创建失败", HTTP_STATUS_SERVICE_UNAVAILABLE) from exc
        if parent.storage_path != parent_dir:
            parent.storage_path = parent_dir
        folder.storage_path = path
        db.commit()
        db.refresh(folder)
        logger.info(
            "Created folder %s (%s) at %s",
            folder.id,
            folder.name,
            path,
            extra={"folder_id": folder.id, "service_id": folder.service_id, "path": path},
        )
        change_signal.increment(CHANNEL_FOLDERS)
        return folder

    def rename_folder(
        self,
        db: Session,
        storage: StorageBackend,
        folder_id: int,
        name: str,
        principal: Optional[Principal] = None,
        *,
        signal_shares: bool = True,
    ) -> Folder:
        """重命名文件夹；作为共享根时同步共享名称，并通知共享列表缓存失效。"""
        name = _clean_name(name)
        folder = self.get_folder_or_404(db, folder_id)
        visibility_resolver.ensure_folder_visible(db, principal, folder)
        if name == folder.name:
            return folder

        if not folder.is_root:
            resolver = PathResolver(db, storage)
            parent = self.get_folder_or_404(db, folder.parent_id)
            old_path = resolver.locate(folder)
            parent_dir = resolver.locate(parent)
            slug = slugify(name) or str(folder.id)
            if join_path(parent_dir, slug) == old_path:
                new_path = old_path
            else:
                new_path = resolve_collision(parent_dir, slug, storage.exists, folder.id)
            self._relocate(storage, old_path, new_path)
            folder.storage_path = new_path

        folder.name = name
        shared = bool(folder.shares)
        for share in folder.shares:
            share.name = name
        db.commit()
        db.refresh(folder)
        logger.info("Renamed folder %s to %s (%s)", folder.id, name, folder.storage_path)
        change_signal.increment(CHANNEL_FOLDERS)
        if shared and signal_shares:
            change_signal.increment(CHANNEL_SHARED_FOLDERS)
        return folder

    def move_folder(
        self,
        db: Session,
        storage: StorageBackend,
        folder_id: int,
        new_parent_id: int,
        principal: Optional[Principal] = None,
    ) -> Folder:
        folder = self.get_folder_or_404(db, folder_id)
        if folder.is_root:
            raise ValidationError("不能移动服务根目录", {"folder_id": folder_id})
        if new_parent_id == folder.id:
            raise ValidationError("不能将文件夹移动到自身", {"folder_id": folder_id})
        new_parent = self.get_folder_or_404(db, new_parent_id)
        if new_parent.service_id != folder.service_id:
            raise ValidationError("不能跨服务移动文件夹", {"folder_id": folder_id, "parent_id": new_parent_id})
        # 目标父节点的祖先链含有当前节点即为成环；链本身有环时抛出 TreeIntegrityError
        if folder_crud.is_descendant(db, new_parent, folder.id):
            raise ValidationError("不能将文件夹移动到其子文件夹中", {"folder_id": folder_id, "parent_id": new_parent_id})
        visibility_resolver.ensure_folder_visible(db, principal, folder)
        visibility_resolver.ensure_folder_visible(db, principal, new_parent)
        if new_parent.id == folder.parent_id:
            return folder

        resolver = PathResolver(db, storage)
        old_path = resolver.locate(folder)
        parent_dir = resolver.locate(new_parent)
        new_path = resolve_collision(parent_dir, folder_segment(folder), storage.exists, folder.id)
        self._relocate(storage, old_path, new_path)

        folder.parent_id = new_parent.id
        folder.storage_path = new_path
        db.commit()
        db.refresh(folder)
        logger.info("Moved folder %s under %s (%s)", folder.id, new_parent.id, new_path)
        change_signal.increment(CHANNEL_FOLDERS)
        return folder

    def delete_folder(
        self,
        db: Session,
        storage: StorageBackend,
        folder_id: int,
        principal: Optional[Principal] = None,
    ) -> None:
        folder = self.get_folder_or_404(db, folder_id)
        visibility_resolver.ensure_folder_visible(db, principal, folder)
        if principal is not None and principal.role == RoleEnum.AGENT and folder.shares:
            raise PermissionDeniedError("坐席不能删除共享文件夹", {"folder_id": folder_id})

        resolver = PathResolver(db, storage)
        folder_ids = folder_crud.subtree_ids(db, folder)
        folders = {node.id: node for node in folder_crud.list_by_ids(db, folder_ids)}
        documents: list[Document] = document_crud.list_by_folder_ids(db, folder_ids)
        if folder.is_root:
            documents.extend(document_crud.list_unfiled(db, folder.service_id))

        for document in documents:
            doc_folder = folders.get(document.folder_id) if document.folder_id is not None else None
            path = resolver.locate_document(document, doc_folder, folder.service)
            if path:
                try:
                    storage.delete_file(path)
                except StorageUnavailableError as exc:
                    logger.warning("Could not delete file %s of document %s: %s", path, document.id, exc)
            db.delete(document)

        directory = resolver.locate(folder)
        try:
            storage.delete_recursive(directory)
        except StorageUnavailableError as exc:
            logger.warning("Could not delete directory %s of folder %s: %s", directory, folder.id, exc)

        shares_removed = False
        # 叶子优先删除，保证子节点总在父节点之前离开
        for node_id in reversed(folder_ids):
            node = folders.get(node_id)
            if node is None:
                continue
            shares_removed = shares_removed or bool(node.shares)
            db.delete(node)
            db.flush()
        db.commit()
        logger.info(
            "Deleted folder %s with %d folders and %d documents",
            folder_id,
            len(folder_ids),
            len(documents),
            extra={"folder_id": folder_id},
        )
        change_signal.increment(CHANNEL_FOLDERS)
        if documents:
            change_signal.increment(
                CHANNEL_DOCUMENTS,
                {"type": DocumentEventEnum.DELETED.value, "folder_id": folder_id, "count": len(documents)},
            )
        if shares_removed:
            change_signal.increment(CHANNEL_SHARED_FOLDERS)

    @staticmethod
    def _relocate(storage: StorageBackend, old_path: str, new_path: str) -> None:
        """物理移动目录；源不存在时补建目标目录，失败只记录日志。"""
        if old_path == new_path:
            return
        try:
            if not storage.move(old_path, new_path):
                logger.info("Source directory %s missing, creating %s", old_path, new_path)
                storage.make_dir(new_path)
        except StorageUnavailableError as exc:
            logger.warning("Physical move %s -> %s failed, keeping database change: %s", old_path, new_path, exc)


folder_service = FolderService()
