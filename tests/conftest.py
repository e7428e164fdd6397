import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.config import Settings
from app.database import Base
from app.main import create_app
from app.mpesa_service import StkPushAck
from app.store import TransactionStore


@pytest.fixture
def settings():
    return Settings(
        shortcode="174379",
        passkey="test-passkey",
        consumer_key="consumer-key",
        consumer_secret="consumer-secret",
        callback_url="https://example.com/callback",
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={
                           "check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return TransactionStore(session_factory)


@pytest.fixture
def gateway(mocker):
    gw = mocker.Mock()
    gw.get_access_token.return_value = "test-token"
    gw.timestamp.return_value = "20240101120000"
    gw.stk_push.return_value = StkPushAck(
        accepted=True,
        response_code="0",
        merchant_request_id="M1",
        checkout_request_id="C1",
        description="Success. Request accepted for processing",
    )
    return gw


@pytest.fixture
def client(settings, gateway, session_factory):
    app = create_app(settings, gateway=gateway, session_factory=session_factory)
    with TestClient(app) as c:
        yield c
