"""存储后端抽象与实现：统一封装本地与 S3 的目录/文件操作。

路径一律是相对存储根的 POSIX 路径（如 ``enterprises/acme/legal``）。
后端的任何 I/O 失败都会包装成 ``StorageUnavailableError``，由服务层决定是中止还是容忍。
"""

from __future__ import annotations

import io
import shutil
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.packages.portal.core.config import Settings, get_settings
from app.packages.portal.core.constants import READ_CHUNK_SIZE
from app.packages.portal.core.exceptions import StorageUnavailableError, ValidationError
from app.packages.portal.core.logger import logger


class StorageBackend:
    """物理存储能力接口。"""

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def make_dir(self, path: str) -> None:
        """创建目录，已存在不视为错误。"""
        raise NotImplementedError

    def move(self, old_path: str, new_path: str) -> bool:
        """移动目录或文件；源不存在时返回 ``False`` 且不做任何事。"""
        raise NotImplementedError

    def delete_recursive(self, path: str) -> None:
        raise NotImplementedError

    def write_file(self, dir_path: str, filename: str, data: bytes) -> str:
        """写入文件并返回其相对路径。"""
        raise NotImplementedError

    def delete_file(self, path: str) -> None:
        raise NotImplementedError

    def read_stream(self, path: str) -> Iterator[bytes]:
        raise NotImplementedError

    def size(self, path: str) -> int:
        raise NotImplementedError


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalBackend(StorageBackend):
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - 极端情况下可能失败
            raise StorageUnavailableError(f"无法创建本地根目录: {exc}", str(self.root)) from exc

    # 统一的安全路径拼接，防止路径遍历
    def _resolve(self, rel: str) -> Path:
        rel_norm = (rel or "").strip().lstrip("/")
        candidate = (self.root / rel_norm).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise ValidationError("非法路径: 越权访问", {"path": rel}) from exc
        return candidate

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def make_dir(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"创建目录失败: {exc}", path) from exc

    def move(self, old_path: str, new_path: str) -> bool:
        src = self._resolve(old_path)
        dst = self._resolve(new_path)
        if not src.exists():
            return False
        if src == dst:
            return True
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            if dst.exists() and src.is_dir() and dst.is_dir():
                # 目标已被占用时合并目录内容，同名文件以源为准
                shutil.copytree(src, dst, dirs_exist_ok=True)
                shutil.rmtree(src)
            else:
                shutil.move(str(src), str(dst))
        except OSError as exc:
            raise StorageUnavailableError(f"移动失败: {exc}", old_path) from exc
        return True

    def delete_recursive(self, path: str) -> None:
        target = self._resolve(path)
        if target == self.root:
            raise ValidationError("拒绝删除存储根目录", {"path": path})
        try:
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()
        except OSError as exc:
            raise StorageUnavailableError(f"删除失败: {exc}", path) from exc

    def write_file(self, dir_path: str, filename: str, data: bytes) -> str:
        directory = self._resolve(dir_path)
        target = self._resolve(f"{dir_path.rstrip('/')}/{filename}" if dir_path else filename)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)
        except OSError as exc:
            raise StorageUnavailableError(f"写入文件失败: {exc}", str(target)) from exc
        return target.relative_to(self.root).as_posix()

    def delete_file(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"删除文件失败: {exc}", path) from exc

    def read_stream(self, path: str) -> Iterator[bytes]:
        target = self._resolve(path)
        try:
            handle = open(target, "rb")
        except OSError as exc:
            raise StorageUnavailableError(f"读取文件失败: {exc}", path) from exc
        return _iter_chunks(handle)

    def size(self, path: str) -> int:
        try:
            return int(self._resolve(path).stat().st_size)
        except OSError as exc:
            raise StorageUnavailableError(f"读取文件信息失败: {exc}", path) from exc


def _iter_chunks(handle: BinaryIO) -> Iterator[bytes]:
    with handle:
        while True:
            chunk = handle.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class S3Backend(StorageBackend):
    """目录以 ``<dir>/`` 占位对象与键前缀模拟。"""

    def __init__(
        self,
        *,
        bucket: str,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        prefix: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.prefix = (prefix or "").strip("/")
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
        )

    # 拼接基于 path_prefix 的对象 key
    def _join_key(self, rel: str) -> str:
        rel_norm = (rel or "").strip("/")
        if ".." in rel_norm.split("/"):
            raise ValidationError("非法路径: 越权访问", {"path": rel})
        if self.prefix:
            return f"{self.prefix}/{rel_norm}" if rel_norm else self.prefix
        return rel_norm

    def _dir_key(self, rel: str) -> str:
        key = self._join_key(rel)
        return f"{key}/" if key else ""

    def _iter_keys(self, prefix: str) -> Iterator[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                yield obj["Key"]

    def _object_exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise

    def _prefix_exists(self, prefix: str) -> bool:
        resp = self._client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=1)
        return (resp.get("KeyCount") or 0) > 0

    def exists(self, path: str) -> bool:
        try:
            return self._object_exists(self._join_key(path)) or self._prefix_exists(self._dir_key(path))
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(f"S3 查询失败: {exc}", path) from exc

    def make_dir(self, path: str) -> None:
        try:
            self._client.put_object(Bucket=self.bucket, Key=self._dir_key(path), Body=b"")
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(f"S3 创建目录失败: {exc}", path) from exc

    def move(self, old_path: str, new_path: str) -> bool:
        src_key = self._join_key(old_path)
        dst_key = self._join_key(new_path)
        if src_key == dst_key:
            return self.exists(old_path)
        try:
            if self._object_exists(src_key):
                self._client.copy_object(
                    Bucket=self.bucket, Key=dst_key, CopySource={"Bucket": self.bucket, "Key": src_key}
                )
                self._client.delete_object(Bucket=self.bucket, Key=src_key)
                return True
            src_prefix = self._dir_key(old_path)
            dst_prefix = self._dir_key(new_path)
            moved: list[str] = []
            for key in self._iter_keys(src_prefix):
                self._client.copy_object(
                    Bucket=self.bucket,
                    Key=dst_prefix + key[len(src_prefix):],
                    CopySource={"Bucket": self.bucket, "Key": key},
                )
                moved.append(key)
            self._delete_keys(moved)
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(f"S3 移动失败: {exc}", old_path) from exc
        return bool(moved)

    def _delete_keys(self, keys: list[str]) -> None:
        # 批量删除（分批防止一次过多）
        for i in range(0, len(keys), 1000):
            batch = [{"Key": key} for key in keys[i : i + 1000]]
            if batch:
                self._client.delete_objects(Bucket=self.bucket, Delete={"Objects": batch})

    def delete_recursive(self, path: str) -> None:
        if not self._join_key(path):
            raise ValidationError("拒绝删除存储根目录", {"path": path})
        try:
            keys = list(self._iter_keys(self._dir_key(path)))
            keys.append(self._join_key(path))
            self._delete_keys(keys)
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(f"S3 删除失败: {exc}", path) from exc

    def write_file(self, dir_path: str, filename: str, data: bytes) -> str:
        rel = f"{dir_path.strip('/')}/{filename}" if dir_path.strip("/") else filename
        try:
            self._client.upload_fileobj(io.BytesIO(data), self.bucket, self._join_key(rel))
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(f"S3 上传失败: {exc}", rel) from exc
        return rel

    def delete_file(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=self._join_key(path))
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(f"S3 删除文件失败: {exc}", path) from exc

    def read_stream(self, path: str) -> Iterator[bytes]:
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=self._join_key(path))
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(f"S3 读取失败: {exc}", path) from exc
        return resp["Body"].iter_chunks(chunk_size=READ_CHUNK_SIZE)

    def size(self, path: str) -> int:
        try:
            head = self._client.head_object(Bucket=self.bucket, Key=self._join_key(path))
        except (BotoCoreError, ClientError) as exc:
            raise StorageUnavailableError(f"S3 读取文件信息失败: {exc}", path) from exc
        return int(head.get("ContentLength") or 0)


def build_backend(settings: Settings) -> StorageBackend:
    t = (settings.storage_type or "").upper()
    if t == "LOCAL":
        return LocalBackend(settings.storage_local_root_path)
    if t == "S3":
        if not settings.s3_bucket:
            raise ValueError("S3 配置不完整：缺少 S3_BUCKET")
        return S3Backend(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            endpoint_url=settings.s3_endpoint_url,
            prefix=settings.s3_path_prefix,
        )
    raise ValueError(f"不支持的存储类型: {settings.storage_type}")


_backend: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """按配置构造并缓存存储后端。"""
    global _backend
    if _backend is None:
        settings = get_settings()
        _backend = build_backend(settings)
        logger.info("Storage backend initialized: %s", type(_backend).__name__)
    return _backend
