"""API v1 汇总路由：统一挂载所有版本化的子路由。"""

from fastapi import APIRouter

from app.packages.portal.api.v1.endpoints import documents, events, folders, shared_folders

api_router = APIRouter()
api_router.include_router(folders.router)
api_router.include_router(documents.router)
api_router.include_router(shared_folders.router)
api_router.include_router(shared_folders.admin_router)
api_router.include_router(events.router)
