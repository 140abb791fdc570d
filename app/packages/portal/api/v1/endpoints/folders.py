"""文件夹路由定义。"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.portal.api.v1.schemas.folders import (
    FolderCreate,
    FolderItem,
    FolderListResponse,
    FolderMove,
    FolderRename,
    FolderResponse,
)
from app.packages.portal.api.v1.schemas.common import ResponseEnvelope
from app.packages.portal.core.constants import HTTP_STATUS_OK
from app.packages.portal.core.dependencies import get_current_principal, get_db, get_storage_backend
from app.packages.portal.core.exceptions import ValidationError
from app.packages.portal.core.principal import Principal
from app.packages.portal.core.responses import create_response
from app.packages.portal.services.storage_backends import StorageBackend
from app.packages.portal.services.tree_service import folder_service

router = APIRouter(prefix="/folders", tags=["folders"])


@router.get("", response_model=FolderListResponse)
def list_folders(
    service_id: Optional[int] = Query(default=None),
    parent_id: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    """按服务返回根目录（首次访问时创建），或按父目录返回子文件夹。"""
    if parent_id is not None:
        folders = folder_service.list_children(db, parent_id, principal, limit=limit)
    elif service_id is not None:
        folders = folder_service.list_roots(db, storage, service_id, principal)
    else:
        raise ValidationError("必须指定 service_id 或 parent_id")
    data = [FolderItem.model_validate(folder) for folder in folders]
    return create_response("获取文件夹列表成功", data, HTTP_STATUS_OK)


@router.post("", response_model=FolderResponse)
def create_folder(
    payload: FolderCreate,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    folder = folder_service.create_folder(
        db,
        storage,
        name=payload.name,
        parent_id=payload.parent_id,
        service_id=payload.service_id,
        principal=principal,
    )
    return create_response("文件夹创建成功", FolderItem.model_validate(folder), HTTP_STATUS_OK)


@router.get("/{folder_id}", response_model=FolderResponse)
def get_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    folder = folder_service.get_folder(db, folder_id, principal)
    return create_response("获取文件夹成功", FolderItem.model_validate(folder), HTTP_STATUS_OK)


@router.patch("/{folder_id}", response_model=FolderResponse)
def rename_folder(
    folder_id: int,
    payload: FolderRename,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    folder = folder_service.rename_folder(db, storage, folder_id, payload.name, principal)
    return create_response("文件夹重命名成功", FolderItem.model_validate(folder), HTTP_STATUS_OK)


@router.post("/{folder_id}/move", response_model=FolderResponse)
def move_folder(
    folder_id: int,
    payload: FolderMove,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    folder = folder_service.move_folder(db, storage, folder_id, payload.parent_id, principal)
    return create_response("文件夹移动成功", FolderItem.model_validate(folder), HTTP_STATUS_OK)


@router.delete("/{folder_id}", response_model=ResponseEnvelope[None])
def delete_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    """删除文件夹及其整棵子树（含文档与共享记录）。"""
    folder_service.delete_folder(db, storage, folder_id, principal)
    return create_response("文件夹删除成功", None, HTTP_STATUS_OK)
