"""存储路径解析：由企业 → 服务 → 文件夹名称链推导相对存储路径。

``storage_path`` 字段只是缓存。``full_path`` 完全由当前名称与层级关系重新推导；
``locate`` 则按“缓存路径 → 相对父目录推导 → 纯推导”的顺序寻找真实存在的目录，
用于祖先被重命名/移动后子节点缓存失效的情形。
"""

from __future__ import annotations

import posixpath
from typing import Optional

from sqlalchemy.orm import Session

from app.packages.portal.core.constants import (
    DEFAULT_DOCUMENT_STEM,
    DEFAULT_ENTERPRISE_SLUG,
    DEFAULT_SERVICE_SLUG,
    ENTERPRISES_DIR,
)
from app.packages.portal.crud.folder import folder_crud
from app.packages.portal.models.document import Document
from app.packages.portal.models.enterprise import Enterprise, Service
from app.packages.portal.models.folder import Folder
from app.packages.portal.services.storage_backends import StorageBackend
from app.packages.portal.utils.path_utils import document_filename, join_path, resolve_collision, slugify


def folder_segment(folder: Folder) -> str:
    """文件夹自身的目录名；名称无法生成 slug 时退回 id。"""
    return slugify(folder.name) or str(folder.id)


def service_segment(service: Service) -> str:
    if service.storage_path:
        return posixpath.basename(service.storage_path.rstrip("/"))
    return slugify(service.name) or DEFAULT_SERVICE_SLUG


class PathResolver:
    def __init__(self, db: Session, storage: StorageBackend) -> None:
        self.db = db
        self.storage = storage

    # ----------------------------
    # 纯推导
    # ----------------------------
    def enterprise_base_path(self, enterprise: Enterprise) -> str:
        """已持久化时直接返回，否则按名称推导并做一次冲突检查（不落库）。"""
        if enterprise.storage_path:
            return enterprise.storage_path.strip("/")
        slug = slugify(enterprise.name) or DEFAULT_ENTERPRISE_SLUG
        return resolve_collision(ENTERPRISES_DIR, slug, self.storage.exists, enterprise.id)

    def service_path(self, service: Service) -> str:
        if service.storage_path:
            return service.storage_path.strip("/")
        return join_path(self.enterprise_base_path(service.enterprise), service_segment(service))

    def folder_dir_path(self, folder: Optional[Folder], service: Service) -> str:
        """``[服务 slug, 子文件夹 slug...]``，不含服务根目录自身的名称。"""
        if folder is None:
            return service_segment(service)
        chain = folder_crud.ancestor_chain(self.db, folder, strict=False)
        segments = [folder_segment(node) for node in reversed(chain) if node.parent_id is not None]
        return join_path(service_segment(service), *segments)

    def full_path(self, folder: Optional[Folder], service: Service) -> str:
        return join_path(self.enterprise_base_path(service.enterprise), self.folder_dir_path(folder, service))

    # ----------------------------
    # 结合物理存储的定位
    # ----------------------------
    def locate(self, folder: Folder) -> str:
        """返回文件夹当前最可信的物理路径（不一定存在）。"""
        chain = list(reversed(folder_crud.ancestor_chain(self.db, folder, strict=False)))
        located: Optional[str] = None
        for node in chain:
            located = self._locate_node(node, located)
        return located or self.full_path(folder, folder.service)

    def _locate_node(self, node: Folder, parent_location: Optional[str]) -> str:
        cached = node.storage_path.strip("/") if node.storage_path else None
        candidates: list[str] = []
        if node.parent_id is None:
            if cached:
                candidates.append(cached)
            candidates.append(self.service_path(node.service))
        elif parent_location is not None:
            # 缓存路径必须仍位于父目录之下，否则可能指向后来同名新建的其他目录
            if cached and posixpath.dirname(cached) == parent_location:
                candidates.append(cached)
            if cached:
                candidates.append(join_path(parent_location, posixpath.basename(cached)))
            candidates.append(join_path(parent_location, folder_segment(node)))
        else:
            # 祖先链被截断（环或悬空父节点），只能使用纯推导
            if cached:
                candidates.append(cached)
            candidates.append(self.full_path(node, node.service))
        for candidate in candidates:
            if self.storage.exists(candidate):
                return candidate
        return candidates[0]

    def document_dir(self, document: Document, folder: Optional[Folder], service: Optional[Service]) -> str:
        if folder is not None:
            return self.locate(folder)
        if service is not None:
            return self.service_path(service)
        return posixpath.dirname(document.storage_path or "")

    def locate_document(
        self, document: Document, folder: Optional[Folder], service: Optional[Service]
    ) -> Optional[str]:
        """在文档所在目录下定位文件；缓存路径不在该目录下时视为失效。都不存在返回 ``None``。"""
        directory = self.document_dir(document, folder, service)
        cached = document.storage_path.strip("/") if document.storage_path else None
        if cached and posixpath.dirname(cached) == directory and self.storage.exists(cached):
            return cached
        filename = posixpath.basename(cached) if cached else document_filename(document.name, DEFAULT_DOCUMENT_STEM)
        candidate = join_path(directory, filename)
        if self.storage.exists(candidate):
            return candidate
        return None

    # ----------------------------
    # 基础路径持久化
    # ----------------------------
    def persist_base_paths(self, service: Service) -> bool:
        """首次使用时固化企业与服务目录，返回是否有字段被写入（未提交）。"""
        changed = False
        enterprise = service.enterprise
        if not enterprise.storage_path:
            enterprise.storage_path = self.enterprise_base_path(enterprise)
            changed = True
        if not service.storage_path:
            slug = slugify(service.name) or DEFAULT_SERVICE_SLUG
            service.storage_path = resolve_collision(
                enterprise.storage_path, slug, self.storage.exists, service.id
            )
            changed = True
        return changed
