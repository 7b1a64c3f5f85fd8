from __future__ import annotations

from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from consignment_ledger.models import Base, InventoryLevel, Product, Seller, SellerStatus


def make_session_factory() -> sessionmaker:
    engine = create_engine('sqlite+pysqlite:///:memory:', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def add_seller(db: Session, name: str = 'Ana Souza', phone: str | None = '(48) 98809-2521') -> Seller:
    seller = Seller(name=name, phone=phone, status=SellerStatus.ACTIVE)
    db.add(seller)
    db.flush()
    return seller


def add_variant(
    db: Session,
    *,
    reference: str = 'SUT-001',
    name: str = 'Lace bra',
    size: str = 'M',
    color: str = 'Black',
    store_qty: int = 5,
    factory_qty: int = 20,
) -> InventoryLevel:
    product = db.query(Product).filter(Product.reference == reference).one_or_none()
    if product is None:
        product = Product(reference=reference, name=name, sale_price=Decimal('89.90'), active=True)
        db.add(product)
        db.flush()
    level = InventoryLevel(product_id=product.id, size=size, color=color, store_qty=store_qty, factory_qty=factory_qty)
    db.add(level)
    db.flush()
    return level
