"""测试夹具：为 pytest 提供数据库、存储、主体令牌与客户端的共享配置。"""

import os
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.packages.portal.core.dependencies import get_db, get_storage_backend
from app.packages.portal.core.enums import RoleEnum
from app.packages.portal.core.principal import Principal
from app.packages.portal.core.security import create_access_token
from app.packages.portal.db import session as db_session
from app.packages.portal.models import Enterprise, Service
from app.packages.portal.models.base import Base
from app.packages.portal.services import change_signal as change_signal_module
from app.packages.portal.services.storage_backends import LocalBackend
from app.main import app

TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    Base.metadata.create_all(bind=engine)
    yield

    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture(autouse=True)
def reset_state() -> Generator[None, None, None]:
    """每个用例使用干净的表与内存版变更计数器。"""
    Base.metadata.drop_all(bind=db_session.engine)
    Base.metadata.create_all(bind=db_session.engine)
    change_signal_module.use_backend(change_signal_module.InMemorySignalBackend())
    yield


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def storage(tmp_path) -> LocalBackend:
    return LocalBackend(tmp_path / "storage")


@pytest.fixture()
def acme(db_session_fixture: Session) -> dict:
    """企业 Acme 及其两个服务 Legal / Sales，另有一个无关企业 Globex。"""
    db = db_session_fixture
    acme_ent = Enterprise(name="Acme")
    globex = Enterprise(name="Globex")
    db.add_all([acme_ent, globex])
    db.flush()
    legal = Service(name="Legal", enterprise_id=acme_ent.id)
    sales = Service(name="Sales", enterprise_id=acme_ent.id)
    research = Service(name="Research", enterprise_id=globex.id)
    db.add_all([legal, sales, research])
    db.commit()
    return {"enterprise": acme_ent, "globex": globex, "legal": legal, "sales": sales, "research": research}


@pytest.fixture()
def principal_factory(acme) -> Callable[..., Principal]:
    def _make(
        role: RoleEnum = RoleEnum.AGENT,
        service: str | None = "legal",
        *,
        user_id: int = 1,
        enterprise: str = "enterprise",
        can_view_all_services: bool = False,
    ) -> Principal:
        return Principal(
            id=user_id,
            role=role,
            enterprise_id=acme[enterprise].id,
            service_id=acme[service].id if service else None,
            can_view_all_services=can_view_all_services,
        )

    return _make


@pytest.fixture()
def auth_headers(principal_factory) -> Callable[..., dict[str, str]]:
    """按主体参数签发令牌并返回 ``Authorization`` 头部。"""

    def _headers(*args, **kwargs) -> dict[str, str]:
        principal = principal_factory(*args, **kwargs)
        token = create_access_token(principal.to_claims())
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def client(db_session_fixture, storage):
    """构建 FastAPI TestClient，并注入测试专用的数据库与存储依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_backend] = lambda: storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
