
import json
import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import requests
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import sys
sys.path.append(os.getcwd())

os.environ.setdefault("DATABASE_URL", "sqlite://")

from app.api.errors import register_error_handlers
from app.api.v1.router import api_router
from app.core.config_env import Settings
from app.core.deps import get_clock, get_ktag_client, get_settings
from app.db.session import Base, get_db
from app.models.device import Device
from app.models.enums import DeviceStatus
from app.models.location import LocationRecord
from app.services.ktag_client import KTagClient

JWT_SECRET = "TEST_JWT_SECRET_CHANGE_ME"
NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.body = json.dumps(payload).encode() if payload is not None else text.encode()
        self.closed = False

    @property
    def ok(self):
        return self.status_code < 400

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeMonotonic:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now


class DripResponse(FakeResponse):
    """Valid body delivered one byte at a time, advancing the clock per byte."""

    def __init__(self, clock, step, payload):
        super().__init__(200, payload)
        self.clock = clock
        self.step = step

    def iter_content(self, chunk_size=1):
        for b in self.body:
            self.clock.now += self.step
            yield bytes([b])


class FakeUpstream:
    """Stands in for requests.Session: replays scripted responses/exceptions, records calls."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        item = self.script.pop(0) if self.script else FakeResponse(500)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        JWT_SECRET=JWT_SECRET,
        KTAG_API_URL="https://ktag.example.test/api/locate",
        KTAG_USERNAME="ktag-user",
        KTAG_PASSWORD="ktag-pass",
        RATE_LIMIT_SECONDS=60,
        CACHE_SECONDS=300,
        MAX_RETRIES=3,
        RETRY_DELAY_MS=1000,
        _env_file=None,
    )


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def SessionTesting(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db(SessionTesting) -> Session:
    db = SessionTesting()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def app_instance(SessionTesting, settings, upstream, sleeps) -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(api_router, prefix="/api/v1")

    def _get_db():
        s = SessionTesting()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    app.dependency_overrides[get_ktag_client] = lambda: KTagClient(settings, session=upstream, sleep=sleeps.append)
    return app


@pytest.fixture(scope="function")
def client(app_instance) -> TestClient:
    with TestClient(app_instance) as c:
        yield c


@pytest.fixture
def make_token():
    def _make(sub, secret=JWT_SECRET, **extra):
        payload = {"sub": str(sub), "role": "authenticated", "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp())}
        payload.update(extra)
        return jwt.encode(payload, secret, algorithm="HS256")
    return _make


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def auth_headers(make_token, owner_id):
    return {"Authorization": f"Bearer {make_token(owner_id)}"}


@pytest.fixture
def make_device(db: Session, owner_id):
    def _make(**kw):
        data = dict(
            name="Backpack",
            accessory_id="ACC-001",
            hashed_adv_key="aGFzaGVkLWFkdi1rZXk=",
            private_key="cHJpdmF0ZS1rZXk=",
            owner_id=owner_id,
            status=DeviceStatus.active,
        )
        data.update(kw)
        device = Device(**data)
        db.add(device); db.commit(); db.refresh(device)
        return device
    return _make


@pytest.fixture
def add_location(db: Session):
    def _add(device, age_seconds, lat=-3.7, lon=-38.5, conf=50.0, status=1):
        rec = LocationRecord(
            device_id=device.id,
            latitude=lat,
            longitude=lon,
            confidence=conf,
            status_code=status,
            timestamp=NOW - timedelta(seconds=age_seconds),
        )
        db.add(rec); db.commit()
        return rec
    return _add


@pytest.fixture
def count_locations(SessionTesting):
    def _count(device_id):
        s = SessionTesting()
        try:
            return s.query(LocationRecord).filter(LocationRecord.device_id == device_id).count()
        finally:
            s.close()
    return _count


@pytest.fixture
def transport_error():
    return requests.ConnectionError("connection reset")
