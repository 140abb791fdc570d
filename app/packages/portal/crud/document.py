"""Document CRUD。"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Query, Session

from app.packages.portal.crud.base import CRUDBase
from app.packages.portal.models.document import Document


class CRUDDocument(CRUDBase[Document]):
    def list_by_folder_ids(self, db: Session, folder_ids: list[int]) -> list[Document]:
        if not folder_ids:
            return []
        return self.query(db).filter(Document.folder_id.in_(folder_ids)).order_by(Document.id).all()

    def list_unfiled(self, db: Session, service_id: int) -> list[Document]:
        return (
            self.query(db)
            .filter(Document.service_id == service_id)
            .filter(Document.folder_id.is_(None))
            .order_by(Document.id)
            .all()
        )

    def filtered_query(
        self,
        db: Session,
        *,
        folder_id: Optional[int] = None,
        service_id: Optional[int] = None,
        enterprise_id: Optional[int] = None,
    ) -> Query:
        """按上下文构造文档查询（未排序），由调用方决定分页。"""
        query = self.query(db)
        if folder_id is not None:
            query = query.filter(Document.folder_id == folder_id)
        if service_id is not None:
            query = query.filter(Document.service_id == service_id)
        if enterprise_id is not None:
            query = query.filter(Document.enterprise_id == enterprise_id)
        return query


document_crud = CRUDDocument(Document)
