"""Folder CRUD：目录树的关系型表示。

所有沿 ``parent_id`` 向上的遍历都带有跳数上限与已访问集合，
不依赖“构造上无环”的假设。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.portal.core.config import get_settings
from app.packages.portal.core.exceptions import TreeIntegrityError
from app.packages.portal.core.logger import logger
from app.packages.portal.crud.base import CRUDBase
from app.packages.portal.models.enterprise import Service
from app.packages.portal.models.folder import Folder


class CRUDFolder(CRUDBase[Folder]):
    def get_root(self, db: Session, service_id: int) -> Optional[Folder]:
        return (
            self.query(db)
            .filter(Folder.service_id == service_id)
            .filter(Folder.parent_id.is_(None))
            .order_by(Folder.id)
            .first()
        )

    def get_or_create_root(self, db: Session, service: Service) -> tuple[Folder, bool]:
        """返回服务根目录，不存在时在 SAVEPOINT 中插入。

        并发插入触发部分唯一索引冲突时回滚 SAVEPOINT 并重新读取，
        第二个返回值表示本次调用是否新建了根目录。
        """
        root = self.get_root(db, service.id)
        if root is not None:
            return root, False
        try:
            with db.begin_nested():
                root = Folder(name=service.name, service_id=service.id, parent_id=None)
                db.add(root)
                db.flush()
        except IntegrityError:
            logger.info("Root folder for service %s created concurrently, re-reading", service.id)
            root = self.get_root(db, service.id)
            if root is None:
                raise
            return root, False
        return root, True

    def list_children(self, db: Session, parent_id: int, *, limit: Optional[int] = None) -> list[Folder]:
        query = self.query(db).filter(Folder.parent_id == parent_id).order_by(Folder.id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def ancestor_chain(self, db: Session, folder: Folder, *, strict: bool = True) -> list[Folder]:
        """返回从 ``folder`` 自身到服务根目录的节点列表（含两端）。

        ``strict`` 为真时，遇到环、悬空父节点或超过 ``tree_max_depth`` 跳抛出
        ``TreeIntegrityError``；否则在该处截断并返回已收集的部分。
        """
        max_depth = get_settings().tree_max_depth
        chain = [folder]
        visited = {folder.id}
        current = folder
        while current.parent_id is not None:
            problem = None
            if len(chain) > max_depth:
                problem = f"祖先链超过 {max_depth} 层"
            elif current.parent_id in visited:
                problem = "文件夹层级出现循环引用"
            if problem is None:
                parent = self.get(db, current.parent_id)
                if parent is None:
                    problem = "父文件夹不存在"
            if problem is not None:
                if strict:
                    raise TreeIntegrityError(problem, {"folder_id": folder.id})
                logger.warning("Ancestor walk of folder %s stopped at %s: %s", folder.id, current.id, problem)
                break
            chain.append(parent)
            visited.add(parent.id)
            current = parent
        return chain

    def is_descendant(self, db: Session, candidate: Folder, ancestor_id: int) -> bool:
        """``candidate`` 是否等于 ``ancestor_id`` 或位于其子树中。"""
        return any(node.id == ancestor_id for node in self.ancestor_chain(db, candidate))

    def subtree_ids(self, db: Session, folder: Folder) -> list[int]:
        """广度优先收集子树内全部文件夹 id（含自身），父节点总在子节点之前。"""
        ordered = [folder.id]
        seen = {folder.id}
        frontier = [folder.id]
        while frontier:
            rows = (
                db.query(Folder.id)
                .filter(Folder.parent_id.in_(frontier))
                .order_by(Folder.id)
                .all()
            )
            frontier = []
            for (child_id,) in rows:
                if child_id in seen:
                    continue
                seen.add(child_id)
                ordered.append(child_id)
                frontier.append(child_id)
        return ordered

    def list_by_ids(self, db: Session, ids: list[int]) -> list[Folder]:
        if not ids:
            return []
        return self.query(db).filter(Folder.id.in_(ids)).all()


folder_crud = CRUDFolder(Folder)
