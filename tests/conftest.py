"""Shared test fixtures."""
from typing import Any, Dict, Generator, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

from retailsync.config import Settings
from retailsync.db.engine import create_db_engine


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_db_engine("sqlite:///:memory:", poolclass=StaticPool)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    """Settings with no pauses and fast retries."""
    return Settings(
        _env_file=None,
        kiot_client_id="client",
        kiot_client_secret="secret",
        kiot_retailer="shop",
        kiot_base_url="https://kiot.test",
        kiot_token_url="https://id.kiot.test/connect/token",
        retry_max_attempts=3,
        retry_base_delay=0.0,
        batch_size=2,
        batch_pause_seconds=0.0,
        page_size=2,
        page_pause_seconds=0.0,
        backfill_days=21,
        backfill_chunk_days=7,
    )


def make_order(
    order_id: int,
    *,
    code: Optional[str] = None,
    status: int = 1,
    total: float = 100000,
    modified: str = "2025-03-01T10:00:00",
    details: Optional[List[Dict[str, Any]]] = None,
    **extra,
) -> Dict[str, Any]:
    """Upstream-shaped order payload."""
    order = {
        "id": order_id,
        "code": code or f"DH{order_id:06d}",
        "status": status,
        "statusValue": {1: "Phiếu tạm", 3: "Hoàn thành", 4: "Đã hủy"}.get(status, "Đang xử lý"),
        "total": total,
        "branchId": 635934,
        "branchName": "Chi nhánh trung tâm",
        "customerName": "Nguyễn Văn A",
        "soldByName": "Phạm Thị Hà",
        "createdDate": "2025-03-01T08:00:00",
        "modifiedDate": modified,
        "orderDetails": details if details is not None else [
            {"productId": 1, "productName": "Áo thun", "quantity": 2, "price": 50000},
        ],
    }
    order.update(extra)
    return order


@pytest.fixture
def order_factory():
    return make_order
