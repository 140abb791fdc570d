"""共享文件夹路由：可见列表对所有主体开放，管理接口仅限管理员。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.portal.api.v1.schemas.common import ResponseEnvelope
from app.packages.portal.api.v1.schemas.shared_folders import (
    SharedFolderCreate,
    SharedFolderLink,
    SharedFolderListResponse,
    SharedFolderResponse,
    SharedFolderSummary,
    SharedFolderUpdate,
)
from app.packages.portal.core.constants import HTTP_STATUS_OK
from app.packages.portal.core.dependencies import get_current_principal, get_db, get_storage_backend, require_admin
from app.packages.portal.core.principal import Principal
from app.packages.portal.core.responses import create_response
from app.packages.portal.models.shared_folder import SharedFolder
from app.packages.portal.services.share_service import share_service
from app.packages.portal.services.storage_backends import StorageBackend
from app.packages.portal.services.visibility_service import visibility_resolver

router = APIRouter(prefix="/shared-folders", tags=["shared-folders"])
admin_router = APIRouter(prefix="/admin/shared-folders", tags=["shared-folders"])


def _summary(share: SharedFolder) -> SharedFolderSummary:
    return SharedFolderSummary(
        id=share.id,
        name=share.name,
        folder_id=share.folder_id,
        visibility=share.visibility,
        services=share.service_ids,
    )


@router.get("/visible", response_model=SharedFolderListResponse)
def list_visible_shared_folders(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """返回当前主体可见的共享文件夹（短期缓存）。"""
    data = visibility_resolver.resolve_visible(db, principal)
    return create_response("获取共享文件夹成功", data, HTTP_STATUS_OK)


@admin_router.post("", response_model=SharedFolderResponse)
def create_shared_folder(
    payload: SharedFolderCreate,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(require_admin),
):
    share = share_service.create_shared_folder(
        db,
        storage,
        name=payload.name,
        host_service_id=payload.host_service_id,
        parent_id=payload.parent_id,
        visibility=payload.visibility,
        service_ids=payload.services,
        principal=principal,
    )
    return create_response("共享文件夹创建成功", _summary(share), HTTP_STATUS_OK)


@admin_router.post("/link", response_model=SharedFolderResponse)
def link_shared_folder(
    payload: SharedFolderLink,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    share = share_service.share_folder(
        db, payload.folder_id, payload.visibility, payload.services, principal=principal
    )
    return create_response("文件夹共享成功", _summary(share), HTTP_STATUS_OK)


@admin_router.patch("/{share_id}", response_model=SharedFolderResponse)
def update_shared_folder(
    share_id: int,
    payload: SharedFolderUpdate,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(require_admin),
):
    share = share_service.update_share(
        db,
        storage,
        share_id,
        name=payload.name,
        visibility=payload.visibility,
        service_ids=payload.services,
        principal=principal,
    )
    return create_response("共享文件夹更新成功", _summary(share), HTTP_STATUS_OK)


@admin_router.delete("/{share_id}", response_model=ResponseEnvelope[None])
def delete_shared_folder(
    share_id: int,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(require_admin),
):
    """取消共享会删除底层文件夹子树。"""
    share_service.unshare_folder(db, storage, share_id, principal=principal)
    return create_response("共享文件夹删除成功", None, HTTP_STATUS_OK)
