"""API v1 汇总路由：业务接口与文件流直链分开挂载。"""

from fastapi import APIRouter

from app.packages.filemanager.api.v1.endpoints import files, stream

api_router = APIRouter()
api_router.include_router(files.router)

stream_router = APIRouter()
stream_router.include_router(stream.router)
