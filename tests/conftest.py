import logging

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from weblog.main import app
from weblog.deps.db import get_db
from weblog.db.models import Device, DeviceStatus

# 테스트용 인메모리 SQLite DB
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# DB 초기화 및 세션 오버라이드
@pytest.fixture(name="session")
def session_fixture():
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)

# 클라이언트 생성 (의존성 주입 오버라이드)
@pytest.fixture(name="client")
def client_fixture(session: Session):
    def get_session_override():
        return session

    app.dependency_overrides[get_db] = get_session_override

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

# 인터셉터 로그만 모아서 보기
@pytest.fixture
def aspect_logs(caplog):
    caplog.set_level(logging.INFO, logger="weblog.aspect")

    def messages() -> list[str]:
        return [r.getMessage() for r in caplog.records if r.name == "weblog.aspect"]

    return messages

# [Helper] 테스트용 기기 생성
@pytest.fixture
def device(session: Session) -> Device:
    device = Device(
        id=42,
        name="living-room-lamp",
        serial_no="SN-0042",
        status=DeviceStatus.ONLINE,
        usage_kwh=12.0,
    )
    session.add(device)
    session.commit()
    session.refresh(device)
    return device
