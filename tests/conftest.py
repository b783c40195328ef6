import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost")
os.environ.setdefault("RATE_LIMIT_REQUESTS", "10000")
os.environ.setdefault("SALE_RATE_LIMIT_REQUESTS", "10000")
os.environ.setdefault("SQLITE_BUSY_TIMEOUT_SECONDS", "15")
os.environ.setdefault("SMTP_EMAIL", "")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict

import pytest
from fastapi.testclient import TestClient

from retailbill.api.deps import get_db, get_sale_service
from retailbill.core.rate_limiter import general_limiter, sale_limiter
from retailbill.core.security import create_access_token
from retailbill.db.init_db import init_db
from retailbill.db.session import build_engine, build_session_factory
from retailbill.main import app
from retailbill.models import Customer, InventoryItem, Sale, Store, User
from retailbill.notifications.channels import ChannelResult, WhatsAppChannel
from retailbill.notifications.dispatcher import InvoiceNotificationDispatcher
from retailbill.services.sale_service import Caller, SaleService

SALE_TIME = datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc)


def fixed_clock():
    return SALE_TIME


class FakeChannel:
    """In-memory notification channel that records what it was asked to send."""

    def __init__(self, name, enabled=True, error=None):
        self.name = name
        self.enabled = enabled
        self.error = error
        self.sent = []

    def is_enabled(self):
        return self.enabled

    def send(self, invoice, pdf_bytes, contact):
        if self.error is not None:
            raise self.error
        self.sent.append((invoice, pdf_bytes, contact))
        return ChannelResult(status="sent", message_id=f"{self.name}-{len(self.sent)}")


@dataclass
class Seed:
    store_id: int
    other_store_id: int
    staff: Caller
    admin: Caller
    manager_without_store: Caller
    superadmin_without_store: Caller
    cashier_id: int
    outsider_id: int
    customer_id: int
    items: Dict[str, int]


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'retailbill-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def seed(session_factory) -> Seed:
    with session_factory() as db:
        main_store = Store(name="Smart Shop - MG Road", city="Bengaluru", phone="+91 9876543210")
        other_store = Store(name="Smart Shop - Indiranagar", city="Bengaluru")
        db.add_all([main_store, other_store])
        db.flush()

        staff = User(name="Ravi", email="ravi@smartshop.com", role="staff", store_id=main_store.id)
        admin = User(name="Admin", email="admin@smartshop.com", role="admin")
        manager = User(name="Meera", email="meera@smartshop.com", role="manager")
        superadmin = User(name="Root", email="root@smartshop.com", role="superadmin")
        outsider = User(name="Guest", email="guest@example.com", role="customer")
        customer = Customer(name="Asha Verma", phone="9812345678", email="asha@example.com")
        db.add_all([staff, admin, manager, superadmin, outsider, customer])

        items = {
            "A": InventoryItem(name="Basmati Rice 5kg", brand="India Gate", sku="RICE-5KG",
                               sell_price=Decimal("100.00"), mrp_price=Decimal("120.00"), stock_qty=10,
                               store_id=main_store.id),
            "B": InventoryItem(name="Toor Dal 1kg", brand="Tata Sampann", sku="DAL-1KG",
                               sell_price=Decimal("50.00"), mrp_price=Decimal("60.00"), stock_qty=5,
                               store_id=main_store.id),
            "C": InventoryItem(name="Tea 500g", brand="Red Label", sku="TEA-500",
                               sell_price=Decimal("260.00"), mrp_price=Decimal("250.00"), stock_qty=3,
                               store_id=main_store.id),
        }
        db.add_all(items.values())
        db.commit()

        return Seed(
            store_id=main_store.id,
            other_store_id=other_store.id,
            staff=Caller.from_user(staff),
            admin=Caller.from_user(admin),
            manager_without_store=Caller.from_user(manager),
            superadmin_without_store=Caller.from_user(superadmin),
            cashier_id=staff.id,
            outsider_id=outsider.id,
            customer_id=customer.id,
            items={key: item.id for key, item in items.items()},
        )


@pytest.fixture
def email_channel():
    return FakeChannel("email")


@pytest.fixture
def telegram_channel():
    return FakeChannel("telegram")


@pytest.fixture
def dispatcher(email_channel, telegram_channel):
    return InvoiceNotificationDispatcher([email_channel, telegram_channel, WhatsAppChannel(enabled=False)])


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(session_factory, dispatcher, sleeps):
    return SaleService(
        session_factory,
        dispatcher=dispatcher,
        clock=fixed_clock,
        backoff_seconds=0.01,
        sleep=sleeps.append,
    )


@pytest.fixture
def client(session_factory, service):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sale_service] = lambda: service
    general_limiter.reset()
    sale_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def stock_of(session_factory, item_id: int) -> int:
    with session_factory() as db:
        return db.query(InventoryItem.stock_qty).filter(InventoryItem.id == item_id).scalar()


def set_stock(session_factory, item_id: int, qty: int) -> None:
    with session_factory() as db:
        db.query(InventoryItem).filter(InventoryItem.id == item_id).update({InventoryItem.stock_qty: qty})
        db.commit()


def sale_count(session_factory) -> int:
    with session_factory() as db:
        return db.query(Sale).count()
