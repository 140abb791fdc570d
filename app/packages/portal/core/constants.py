"""常量定义：集中维护响应码、令牌类型与变更通道名称。"""

from fastapi import status

HTTP_STATUS_OK = status.HTTP_200_OK
HTTP_STATUS_SERVICE_UNAVAILABLE = status.HTTP_503_SERVICE_UNAVAILABLE

ACCESS_TOKEN_TYPE = "bearer"

# 物理目录的顶层前缀与无法生成 slug 时的兜底名称
ENTERPRISES_DIR = "enterprises"
DEFAULT_ENTERPRISE_SLUG = "entreprise"
DEFAULT_SERVICE_SLUG = "service"
DEFAULT_DOCUMENT_STEM = "document"

# 变更通知通道
CHANNEL_FOLDERS = "folders"
CHANNEL_DOCUMENTS = "documents"
CHANNEL_SHARED_FOLDERS = "shared_folders"
CHANGE_CHANNELS = (CHANNEL_FOLDERS, CHANNEL_DOCUMENTS, CHANNEL_SHARED_FOLDERS)

READ_CHUNK_SIZE = 64 * 1024
