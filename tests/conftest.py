import mongomock
import pytest
from fastapi.testclient import TestClient

from catalog import CatalogStore
from database import ensure_indexes, get_db
from ledger import OrderLedger
from main import app


@pytest.fixture
def db():
    database = mongomock.MongoClient()["bengkel_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def catalog(db):
    return CatalogStore(db)


@pytest.fixture
def ledger(db):
    return OrderLedger(db)


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def customer():
    return {
        "customer_name": "Budi Santoso",
        "customer_phone": "081234567890",
        "vehicle_type": "Honda Vario 125",
        "plate_number": "B 1234 XYZ",
        "complaint": "Mesin kasar, minta ganti oli",
    }
