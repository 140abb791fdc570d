"""文档服务：上传、重命名/移动、删除、列表与读取。

磁盘文件名为 ``slug(主名).小写扩展名``，与展示名相互独立；
同目录冲突时在扩展名前追加 ``-<文档 id>``。
"""

from __future__ import annotations

import mimetypes
import posixpath
from typing import Any, Iterator, Optional

from sqlalchemy.orm import Session

from app.packages.portal.core.config import get_settings
from app.packages.portal.core.constants import (
    CHANNEL_DOCUMENTS,
    DEFAULT_DOCUMENT_STEM,
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
from app.packages.portal.core.principal import Principal, apply_enterprise_scope
from app.packages.portal.crud.document import document_crud
from app.packages.portal.crud.enterprise import service_crud
from app.packages.portal.crud.folder import folder_crud
from app.packages.portal.models.document import Document
from app.packages.portal.models.enterprise import Service
from app.packages.portal.models.folder import Folder
from app.packages.portal.services.change_signal import change_signal
from app.packages.portal.services.path_resolver import PathResolver
from app.packages.portal.services.storage_backends import StorageBackend
from app.packages.portal.services.tree_service import folder_service
from app.packages.portal.services.visibility_service import visibility_resolver
from app.packages.portal.utils.path_utils import document_filename, join_path, resolve_collision


def _clamp(value: Optional[int], default: int, maximum: int) -> int:
    if value is None or value <= 0:
        return default
    return min(value, maximum)


def _event(kind: DocumentEventEnum, document: Document) -> dict[str, Any]:
    return {
        "type": kind.value,
        "document_id": document.id,
        "document_name": document.name,
        "folder_id": document.folder_id,
        "service_id": document.service_id,
        "created_by": document.created_by,
    }


class DocumentService:
    def get_document_or_404(self, db: Session, document_id: int) -> Document:
        document = document_crud.get(db, document_id)
        if document is None:
            raise NotFoundError("文档不存在", {"document_id": document_id})
        return document

    def get_document(self, db: Session, document_id: int, principal: Optional[Principal] = None) -> Document:
        document = self.get_document_or_404(db, document_id)
        visibility_resolver.ensure_document_visible(db, principal, document)
        return document

    def _context(self, db: Session, document: Document) -> tuple[Optional[Folder], Optional[Service]]:
        folder = folder_crud.get(db, document.folder_id) if document.folder_id is not None else None
        service = service_crud.get(db, document.service_id) if document.service_id is not None else None
        return folder, service

    # ----------------------------
    # 变更
    # ----------------------------
    def create_document(
        self,
        db: Session,
        storage: StorageBackend,
        *,
        name: str,
        data: bytes,
        folder_id: Optional[int] = None,
        service_id: Optional[int] = None,
        mime_type: Optional[str] = None,
        principal: Optional[Principal] = None,
    ) -> Document:
        name = posixpath.basename((name or "").replace("\\", "/")).strip()
        if not name:
            raise ValidationError("文件名不能为空")
        settings = get_settings()
        if len(data) > settings.upload_max_bytes:
            raise ValidationError(
                f"文件大小超过上限 {settings.upload_max_mb} MB", {"size": len(data)}
            )

        resolver = PathResolver(db, storage)
        folder: Optional[Folder] = None
        if folder_id is not None:
            folder = folder_service.get_folder_or_404(db, folder_id)
            if service_id is not None and service_id != folder.service_id:
                raise ValidationError("文件夹不属于指定的服务", {"folder_id": folder_id, "service_id": service_id})
            service = folder.service
            visibility_resolver.ensure_folder_visible(db, principal, folder)
        elif service_id is not None:
            service = folder_service.get_service(db, service_id)
            visibility_resolver.ensure_service_accessible(principal, service)
            folder_service.ensure_service_root(db, storage, service_id)
        else:
            raise ValidationError("必须指定文件夹或服务")

        document = document_crud.create(
            db,
            {
                "name": name,
                "folder_id": folder.id if folder is not None else None,
                "service_id": service.id,
                "enterprise_id": service.enterprise_id,
                "mime_type": mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream",
                "size_bytes": len(data),
                "created_by": principal.id if principal is not None else None,
            },
            auto_commit=False,
        )
        try:
            target_dir = resolver.document_dir(document, folder, service)
            path = resolve_collision(
                target_dir, document_filename(name, DEFAULT_DOCUMENT_STEM), storage.exists, document.id
            )
            storage.write_file(posixpath.dirname(path), posixpath.basename(path), data)
        except StorageUnavailableError as exc:
            db.rollback()
            logger.error("Document upload aborted, storage unavailable: %s", exc)
            raise AppException("存储不可用，文档上传失败", HTTP_STATUS_SERVICE_UNAVAILABLE) from exc
        document.storage_path = path
        db.commit()
        db.refresh(document)
        logger.info(
            "Stored document %s (%s) at %s",
            document.id,
            document.name,
            path,
            extra={"document_id": document.id, "service_id": document.service_id, "path": path},
        )
        change_signal.increment(CHANNEL_DOCUMENTS, _event(DocumentEventEnum.CREATED, document))
        return document

    def update_document(
        self,
        db: Session,
        storage: StorageBackend,
        document_id: int,
        *,
        name: Optional[str] = None,
        folder_id: Optional[int] = None,
        principal: Optional[Principal] = None,
    ) -> Document:
        """重命名和/或移动文档；物理移动失败只记日志，数据库照常提交。"""
        document = self.get_document_or_404(db, document_id)
        new_name = document.name
        if name is not None:
            new_name = posixpath.basename(name.replace("\\", "/")).strip()
            if not new_name:
                raise ValidationError("文件名不能为空")

        folder, service = self._context(db, document)
        target_folder = folder
        if folder_id is not None and folder_id != document.folder_id:
            target_folder = folder_service.get_folder_or_404(db, folder_id)
            if document.service_id is not None and target_folder.service_id != document.service_id:
                raise ValidationError(
                    "不能跨服务移动文档", {"document_id": document_id, "folder_id": folder_id}
                )
        visibility_resolver.ensure_document_visible(db, principal, document)
        if target_folder is not None and target_folder is not folder:
            visibility_resolver.ensure_folder_visible(db, principal, target_folder)

        if new_name == document.name and target_folder is folder:
            return document

        resolver = PathResolver(db, storage)
        old_path = resolver.locate_document(document, folder, service)
        target_dir = resolver.document_dir(document, target_folder, service)
        filename = document_filename(new_name, DEFAULT_DOCUMENT_STEM)
        if old_path is not None and join_path(target_dir, filename) == old_path:
            new_path = old_path
        else:
            new_path = resolve_collision(target_dir, filename, storage.exists, document.id)

        if old_path is None:
            logger.warning("File of document %s missing, only updating metadata", document.id)
        elif new_path != old_path:
            try:
                storage.move(old_path, new_path)
            except StorageUnavailableError as exc:
                logger.warning("Physical move %s -> %s failed, keeping database change: %s", old_path, new_path, exc)

        document.name = new_name
        document.folder_id = target_folder.id if target_folder is not None else None
        document.storage_path = new_path
        db.commit()
        db.refresh(document)
        logger.info("Updated document %s (%s) at %s", document.id, document.name, new_path)
        change_signal.increment(CHANNEL_DOCUMENTS, _event(DocumentEventEnum.UPDATED, document))
        return document

    def rename_document(
        self, db: Session, storage: StorageBackend, document_id: int, name: str, principal: Optional[Principal] = None
    ) -> Document:
        return self.update_document(db, storage, document_id, name=name, principal=principal)

    def move_document(
        self,
        db: Session,
        storage: StorageBackend,
        document_id: int,
        folder_id: int,
        principal: Optional[Principal] = None,
    ) -> Document:
        return self.update_document(db, storage, document_id, folder_id=folder_id, principal=principal)

    def delete_document(
        self, db: Session, storage: StorageBackend, document_id: int, principal: Optional[Principal] = None
    ) -> None:
        document = self.get_document(db, document_id, principal)
        folder, service = self._context(db, document)
        path = PathResolver(db, storage).locate_document(document, folder, service)
        if path:
            try:
                storage.delete_file(path)
            except StorageUnavailableError as exc:
                logger.warning("Could not delete file %s of document %s: %s", path, document.id, exc)
        event = _event(DocumentEventEnum.DELETED, document)
        document_crud.hard_delete(db, document)
        logger.info("Deleted document %s", document_id)
        change_signal.increment(CHANNEL_DOCUMENTS, event)

    # ----------------------------
    # 查询
    # ----------------------------
    def list_documents(
        self,
        db: Session,
        *,
        folder_id: Optional[int] = None,
        service_id: Optional[int] = None,
        principal: Optional[Principal] = None,
        page: int = 1,
        per_page: Optional[int] = None,
        count_only: bool = False,
    ) -> dict[str, Any]:
        """按文件夹/服务/企业上下文分页列出文档，最新的在前。"""
        settings = get_settings()
        per_page = _clamp(per_page, settings.documents_per_page_default, settings.documents_per_page_max)
        page = max(page or 1, 1)

        if folder_id is not None:
            folder = folder_service.get_folder(db, folder_id, principal)
            query = document_crud.filtered_query(db, folder_id=folder.id)
        elif service_id is not None:
            service = folder_service.get_service(db, service_id)
            if principal is not None and not principal.is_super_admin and service.enterprise_id != principal.enterprise_id:
                raise PermissionDeniedError("无权访问该服务", {"service_id": service_id})
            query = document_crud.filtered_query(db, service_id=service.id)
        else:
            query = apply_enterprise_scope(document_crud.filtered_query(db), Document, principal)

        if folder_id is None:
            clause = visibility_resolver.document_clause(db, principal)
            if clause is not None:
                query = query.filter(clause)

        total = query.count()
        if count_only:
            return {"total": total}
        items = (
            query.order_by(Document.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return {"items": items, "total": total, "page": page, "per_page": per_page}

    def recent_documents(
        self,
        db: Session,
        principal: Optional[Principal] = None,
        *,
        folder_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """文件夹内最新文档；未指定时坐席看本服务，其余看整个企业。"""
        settings = get_settings()
        limit = _clamp(limit, settings.documents_recent_default, settings.documents_recent_max)
        if folder_id is not None:
            folder_service.get_folder(db, folder_id, principal)
            query = document_crud.filtered_query(db, folder_id=folder_id)
        elif (
            principal is not None
            and principal.role == RoleEnum.AGENT
            and not principal.can_view_all_services
            and principal.service_id is not None
        ):
            query = document_crud.filtered_query(db, service_id=principal.service_id)
        else:
            query = apply_enterprise_scope(document_crud.filtered_query(db), Document, principal)
            clause = visibility_resolver.document_clause(db, principal)
            if clause is not None:
                query = query.filter(clause)
        return query.order_by(Document.id.desc()).limit(limit).all()

    def read_document(
        self,
        db: Session,
        storage: StorageBackend,
        document_id: int,
        principal: Optional[Principal] = None,
    ) -> tuple[Iterator[bytes], str, str]:
        """返回 ``(数据流, 展示文件名, MIME)``；缓存路径失效时重新定位并回写。"""
        document = self.get_document(db, document_id, principal)
        folder, service = self._context(db, document)
        path = PathResolver(db, storage).locate_document(document, folder, service)
        if path is None:
            raise NotFoundError("文件不存在", {"document_id": document_id})
        if path != document.storage_path:
            logger.info("Document %s found at %s, refreshing cached path", document.id, path)
            document.storage_path = path
            db.commit()
        try:
            stream = storage.read_stream(path)
        except StorageUnavailableError as exc:
            raise AppException("存储不可用，无法读取文件", HTTP_STATUS_SERVICE_UNAVAILABLE) from exc
        return stream, document.name, document.mime_type or "application/octet-stream"


document_service = DocumentService()
