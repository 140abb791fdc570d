"""SharedFolder CRUD。"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session, selectinload

from app.packages.portal.crud.base import CRUDBase
from app.packages.portal.models.shared_folder import SharedFolder


class CRUDSharedFolder(CRUDBase[SharedFolder]):
    def list_for_folder_ids(
        self, db: Session, folder_ids: list[int], *, enterprise_id: Optional[int] = None
    ) -> list[SharedFolder]:
        if not folder_ids:
            return []
        query = (
            self.query(db)
            .options(selectinload(SharedFolder.services))
            .filter(SharedFolder.folder_id.in_(folder_ids))
        )
        if enterprise_id is not None:
            query = query.filter(SharedFolder.enterprise_id == enterprise_id)
        return query.all()

    def list_by_enterprise(self, db: Session, enterprise_id: Optional[int]) -> list[SharedFolder]:
        """按创建时间倒序列出共享；``enterprise_id`` 为空时返回全部。"""
        query = self.query(db).options(selectinload(SharedFolder.services))
        if enterprise_id is not None:
            query = query.filter(SharedFolder.enterprise_id == enterprise_id)
        return query.order_by(SharedFolder.id.desc()).all()


shared_folder_crud = CRUDSharedFolder(SharedFolder)
