from decimal import Decimal

from sqlalchemy import select

from consignment_ledger.db import SessionLocal
from consignment_ledger.models import InventoryLevel, Product, Seller, SellerStatus

DEMO_SELLERS = [
    ('Ana Souza', '(48) 98809-2521'),
    ('Beatriz Lima', '(48) 99911-3040'),
]

DEMO_PRODUCTS = [
    ('SUT-001', 'Lace bra', Decimal('89.90'), ['P', 'M', 'G'], ['Black', 'Nude']),
    ('CAL-014', 'Cotton brief', Decimal('29.90'), ['P', 'M', 'G'], ['White', 'Black']),
    ('CON-102', 'Silk set', Decimal('159.00'), ['M', 'G'], ['Wine']),
]


def seed() -> None:
    with SessionLocal() as db:
        for name, phone in DEMO_SELLERS:
            seller = db.execute(select(Seller).where(Seller.name == name)).scalar_one_or_none()
            if not seller:
                db.add(Seller(name=name, phone=phone, status=SellerStatus.ACTIVE))

        for reference, name, price, sizes, colors in DEMO_PRODUCTS:
            product = db.execute(select(Product).where(Product.reference == reference)).scalar_one_or_none()
            if not product:
                product = Product(reference=reference, name=name, sale_price=price, active=True)
                db.add(product)
                db.flush()

            for size in sizes:
                for color in colors:
                    level = db.execute(
                        select(InventoryLevel).where(
                            InventoryLevel.product_id == product.id,
                            InventoryLevel.size == size,
                            InventoryLevel.color == color,
                        )
                    ).scalar_one_or_none()
                    if not level:
                        db.add(
                            InventoryLevel(product_id=product.id, size=size, color=color, store_qty=5, factory_qty=20)
                        )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
