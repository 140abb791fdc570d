"""文档路由定义。"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.packages.portal.api.v1.schemas.common import ResponseEnvelope
from app.packages.portal.api.v1.schemas.documents import (
    DocumentItem,
    DocumentListResponse,
    DocumentPage,
    DocumentPageResponse,
    DocumentResponse,
    DocumentUpdate,
)
from app.packages.portal.core.config import get_settings
from app.packages.portal.core.constants import HTTP_STATUS_OK
from app.packages.portal.core.dependencies import get_current_principal, get_db, get_storage_backend
from app.packages.portal.core.exceptions import ValidationError
from app.packages.portal.core.principal import Principal
from app.packages.portal.core.responses import create_response
from app.packages.portal.services.document_service import document_service
from app.packages.portal.services.storage_backends import StorageBackend

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("", response_model=DocumentPageResponse)
def list_documents(
    folder_id: Optional[int] = Query(default=None),
    service_id: Optional[int] = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: Optional[int] = Query(default=None, ge=1),
    count_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """分页列出文档；``count_only`` 时只返回总数。"""
    result = document_service.list_documents(
        db,
        folder_id=folder_id,
        service_id=service_id,
        principal=principal,
        page=page,
        per_page=per_page,
        count_only=count_only,
    )
    data = DocumentPage(
        items=[DocumentItem.model_validate(doc) for doc in result.get("items", [])],
        total=result["total"],
        page=result.get("page"),
        per_page=result.get("per_page"),
    )
    return create_response("获取文档列表成功", data, HTTP_STATUS_OK)


@router.get("/recent", response_model=DocumentListResponse)
def recent_documents(
    folder_id: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    documents = document_service.recent_documents(db, principal, folder_id=folder_id, limit=limit)
    data = [DocumentItem.model_validate(doc) for doc in documents]
    return create_response("获取最近文档成功", data, HTTP_STATUS_OK)


@router.post("", response_model=DocumentResponse)
def upload_document(
    file: UploadFile = File(...),
    folder_id: Optional[int] = Form(default=None),
    service_id: Optional[int] = Form(default=None),
    name: Optional[str] = Form(default=None),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    """上传单个文档到文件夹，或未归档地放在服务根目录下。"""
    max_bytes = get_settings().upload_max_bytes
    data = file.file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise ValidationError(f"文件大小超过上限 {get_settings().upload_max_mb} MB")
    document = document_service.create_document(
        db,
        storage,
        name=name or file.filename or "",
        data=data,
        folder_id=folder_id,
        service_id=service_id,
        mime_type=file.content_type if file.content_type != "application/octet-stream" else None,
        principal=principal,
    )
    return create_response("文档上传成功", DocumentItem.model_validate(document), HTTP_STATUS_OK)


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    document = document_service.get_document(db, document_id, principal)
    return create_response("获取文档成功", DocumentItem.model_validate(document), HTTP_STATUS_OK)


@router.patch("/{document_id}", response_model=DocumentResponse)
def update_document(
    document_id: int,
    payload: DocumentUpdate,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    document = document_service.update_document(
        db,
        storage,
        document_id,
        name=payload.name,
        folder_id=payload.folder_id,
        principal=principal,
    )
    return create_response("文档更新成功", DocumentItem.model_validate(document), HTTP_STATUS_OK)


@router.delete("/{document_id}", response_model=ResponseEnvelope[None])
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    document_service.delete_document(db, storage, document_id, principal)
    return create_response("文档删除成功", None, HTTP_STATUS_OK)


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    principal: Principal = Depends(get_current_principal),
):
    stream, filename, mime_type = document_service.read_document(db, storage, document_id, principal)
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}
    return StreamingResponse(stream, media_type=mime_type, headers=headers)
