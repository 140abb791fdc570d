"""服务 CRUD。"""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.packages.portal.crud.base import CRUDBase
from app.packages.portal.models.enterprise import Service


class CRUDService(CRUDBase[Service]):
    def filter_ids_in_enterprise(self, db: Session, enterprise_id: int, ids: list[int]) -> list[Service]:
        """只保留属于指定企业的服务，用于同步共享范围。"""
        if not ids:
            return []
        return (
            self.query(db)
            .filter(Service.enterprise_id == enterprise_id)
            .filter(Service.id.in_(set(ids)))
            .order_by(Service.id)
            .all()
        )


service_crud = CRUDService(Service)
