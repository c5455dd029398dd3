import pytest
from fastapi.testclient import TestClient

from renostock.api.main import app
from renostock.core.checklist_service import ChecklistService, get_checklist_service
from renostock.core.reporting import ReportService, get_report_service
from renostock.core.stock_service import StockService, get_service
from renostock.db.postgres import get_db
from tests.fakes import InMemoryDB


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def stock(db):
    return StockService(db)


@pytest.fixture
def checklist(db):
    return ChecklistService(db)


@pytest.fixture
def reports(db):
    return ReportService(db)


@pytest.fixture
def floor(stock):
    return stock.create_floor("5", "5 East")


@pytest.fixture
def client(db, stock, checklist, reports):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_service] = lambda: stock
    app.dependency_overrides[get_checklist_service] = lambda: checklist
    app.dependency_overrides[get_report_service] = lambda: reports
    yield TestClient(app)
    app.dependency_overrides.clear()
