"""存储后端测试：本地文件系统实现与基于内存假客户端的 S3 实现。"""

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from app.packages.portal.core.exceptions import StorageUnavailableError, ValidationError
from app.packages.portal.services.storage_backends import LocalBackend, S3Backend, build_backend


def test_local_make_dir_is_idempotent(storage):
    storage.make_dir("enterprises/acme/legal")
    storage.make_dir("enterprises/acme/legal")
    assert storage.exists("enterprises/acme/legal")
    assert (storage.root / "enterprises" / "acme" / "legal").is_dir()


def test_local_move_missing_source_returns_false(storage):
    assert storage.move("nowhere", "elsewhere") is False
    assert not storage.exists("elsewhere")


def test_local_move_directory_with_content(storage):
    storage.make_dir("a/b")
    storage.write_file("a/b", "note.txt", b"hello")
    assert storage.move("a/b", "a/c") is True
    assert not storage.exists("a/b")
    assert storage.exists("a/c/note.txt")


def test_local_move_into_existing_directory_merges(storage):
    storage.write_file("src", "one.txt", b"1")
    storage.write_file("dst", "two.txt", b"2")
    assert storage.move("src", "dst") is True
    assert storage.exists("dst/one.txt")
    assert storage.exists("dst/two.txt")
    assert not storage.exists("src")


def test_local_rejects_path_traversal(storage):
    with pytest.raises(ValidationError):
        storage.make_dir("../escape")
    with pytest.raises(ValidationError):
        storage.exists("a/../../escape")


def test_local_refuses_to_delete_root(storage):
    with pytest.raises(ValidationError):
        storage.delete_recursive("")


def test_local_write_read_and_delete(storage):
    rel = storage.write_file("docs", "report.pdf", b"x" * 100_000)
    assert rel == "docs/report.pdf"
    assert storage.size(rel) == 100_000
    assert b"".join(storage.read_stream(rel)) == b"x" * 100_000

    storage.delete_file(rel)
    storage.delete_file(rel)
    assert not storage.exists(rel)


def test_local_read_missing_file_is_storage_error(storage):
    with pytest.raises(StorageUnavailableError):
        storage.read_stream("missing.txt")


def test_local_delete_recursive(storage):
    storage.write_file("tree/a/b", "leaf.txt", b"leaf")
    storage.delete_recursive("tree")
    assert not storage.exists("tree")
    storage.delete_recursive("tree")


def test_build_backend_rejects_unknown_type(tmp_path):
    class _Cfg:
        storage_type = "FTP"

    with pytest.raises(ValueError):
        build_backend(_Cfg())


def test_build_backend_local(tmp_path):
    class _Cfg:
        storage_type = "local"
        storage_local_root_path = tmp_path / "root"

    backend = build_backend(_Cfg())
    assert isinstance(backend, LocalBackend)


# ------------------------------------------
# S3
# ------------------------------------------


class _Body:
    def __init__(self, data: bytes):
        self._data = data

    def iter_chunks(self, chunk_size: int = 1024):
        for i in range(0, len(self._data), chunk_size):
            yield self._data[i : i + chunk_size]


class _Paginator:
    def __init__(self, client):
        self._client = client

    def paginate(self, Bucket, Prefix):
        keys = sorted(k for k in self._client.objects if k.startswith(Prefix))
        yield {"Contents": [{"Key": k} for k in keys]}


class FakeS3Client:
    """覆盖 S3Backend 用到的 boto3 客户端方法。"""

    def __init__(self):
        self.objects: dict[str, bytes] = {}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": len(self.objects[Key])}

    def list_objects_v2(self, Bucket, Prefix, MaxKeys=1000):
        count = sum(1 for k in self.objects if k.startswith(Prefix))
        return {"KeyCount": min(count, MaxKeys)}

    def get_paginator(self, name):
        return _Paginator(self)

    def put_object(self, Bucket, Key, Body):
        self.objects[Key] = Body

    def upload_fileobj(self, fileobj, bucket, key):
        self.objects[key] = fileobj.read()

    def copy_object(self, Bucket, Key, CopySource):
        self.objects[Key] = self.objects[CopySource["Key"]]

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)

    def delete_objects(self, Bucket, Delete):
        for item in Delete["Objects"]:
            self.objects.pop(item["Key"], None)

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": _Body(self.objects[Key])}


@pytest.fixture()
def s3():
    return S3Backend(bucket="docs", prefix="portal", client=FakeS3Client())


def test_s3_directories_are_prefixes(s3):
    s3.make_dir("enterprises/acme")
    assert "portal/enterprises/acme/" in s3._client.objects
    assert s3.exists("enterprises/acme")
    assert not s3.exists("enterprises/globex")


def test_s3_move_prefix(s3):
    s3.make_dir("a/b")
    s3.write_file("a/b", "file.txt", b"data")
    assert s3.move("a/b", "a/c") is True
    assert s3.exists("a/c/file.txt")
    assert not s3.exists("a/b/file.txt")
    assert s3.move("a/missing", "a/other") is False


def test_s3_read_and_delete(s3):
    rel = s3.write_file("docs", "n.txt", b"abc")
    assert b"".join(s3.read_stream(rel)) == b"abc"
    assert s3.size(rel) == 3
    s3.delete_recursive("docs")
    assert not s3.exists(rel)


def test_s3_rejects_traversal_and_root_delete(s3):
    with pytest.raises(ValidationError):
        s3.make_dir("a/../../b")
    bare = S3Backend(bucket="docs", client=FakeS3Client())
    with pytest.raises(ValidationError):
        bare.delete_recursive("")


def test_s3_client_errors_become_storage_errors():
    class _Down(FakeS3Client):
        def put_object(self, Bucket, Key, Body):
            raise EndpointConnectionError(endpoint_url="http://s3.local")

    backend = S3Backend(bucket="docs", client=_Down())
    with pytest.raises(StorageUnavailableError):
        backend.make_dir("x")
    with pytest.raises(StorageUnavailableError):
        backend.read_stream("missing")
