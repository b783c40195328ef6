#!/usr/bin/env python
"""Seed a development store: one store, a staff user, a customer and stock.

Prints a bearer token for the staff user so the billing API can be tried
straight away.
"""
from decimal import Decimal

from retailbill.core.security import create_access_token
from retailbill.db.init_db import init_db
from retailbill.db.session import SessionLocal
from retailbill.models import Customer, InventoryItem, Store, User

ITEMS = [
    # name, brand, sku, sell price, mrp, stock
    ("Basmati Rice 5kg", "India Gate", "RICE-5KG", "520.00", "599.00", 40),
    ("Toor Dal 1kg", "Tata Sampann", "DAL-1KG", "165.00", "189.00", 60),
    ("Sunflower Oil 1L", "Fortune", "OIL-1L", "145.00", "160.00", 80),
    ("Tea 500g", "Red Label", "TEA-500", "260.00", "285.00", 35),
    ("Paracetamol 500mg (10)", "Crocin", "MED-PCM", "25.00", "30.00", 200),
    ("Toothpaste 150g", "Colgate", "TP-150", "95.00", "110.00", 50),
]


def seed():
    init_db()
    db = SessionLocal()
    try:
        store = db.query(Store).first()
        if not store:
            store = Store(
                name="Smart Shop - MG Road",
                address="12 MG Road",
                city="Bengaluru",
                state="Karnataka",
                pincode="560001",
                phone="+91 9876543210",
                email="mgroad@smartshop.com",
            )
            db.add(store)
            db.flush()
            print(f"✅ Created store: {store.name}")

        staff = db.query(User).filter(User.email == "staff@smartshop.com").first()
        if not staff:
            staff = User(name="Counter Staff", email="staff@smartshop.com", role="staff", store_id=store.id)
            db.add(staff)
            db.flush()
            print(f"✅ Created staff user: {staff.email}")

        if not db.query(Customer).first():
            db.add(Customer(name="Asha Verma", phone="9812345678", email="asha@example.com"))

        added = 0
        for name, brand, sku, sell, mrp, qty in ITEMS:
            if db.query(InventoryItem).filter(InventoryItem.sku == sku).first():
                continue
            db.add(InventoryItem(
                store_id=store.id,
                name=name,
                brand=brand,
                sku=sku,
                sell_price=Decimal(sell),
                mrp_price=Decimal(mrp),
                stock_qty=qty,
            ))
            added += 1

        db.commit()
        print(f"✅ Added {added} inventory items")
        print(f"\nBearer token for {staff.email}:\n{create_access_token(staff.id, expires_minutes=24 * 60)}")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
