from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from consignment_ledger.models import InventoryLevel, Product, StockOrigin

logger = logging.getLogger(__name__)


def _find_level(db: Session, *, product_id: int, size: str, color: str) -> InventoryLevel | None:
    return db.execute(
        select(InventoryLevel).where(
            InventoryLevel.product_id == product_id,
            InventoryLevel.size == size,
            InventoryLevel.color == color,
        )
    ).scalar_one_or_none()


def resolve_product_id(db: Session, *, reference: str, size: str, color: str) -> int | None:
    """Match a line's reference/size/color to a catalog variant that has an inventory row."""
    return db.execute(
        select(Product.id)
        .join(InventoryLevel, InventoryLevel.product_id == Product.id)
        .where(
            Product.reference == reference,
            InventoryLevel.size == size,
            InventoryLevel.color == color,
        )
        .limit(1)
    ).scalar_one_or_none()


def adjust_stock(
    db: Session,
    *,
    product_id: int | None,
    size: str,
    color: str,
    origin: StockOrigin,
    delta: int,
) -> InventoryLevel | None:
    """Add ``delta`` units to the on-hand counter for ``origin``. Negative deltas take stock out."""
    if delta == 0:
        return None
    if product_id is None:
        logger.warning('Skipping stock move of %s for unresolved variant %s/%s', delta, size, color)
        return None

    level = _find_level(db, product_id=product_id, size=size, color=color)
    if level is None:
        logger.warning('No inventory row for product %s %s/%s; stock move of %s skipped', product_id, size, color, delta)
        return None

    if origin == StockOrigin.STORE:
        level.store_qty = int(level.store_qty or 0) + delta
    else:
        level.factory_qty = int(level.factory_qty or 0) + delta
    logger.debug('Stock %s for product %s %s/%s moved by %s', origin.value, product_id, size, color, delta)
    return level


def take_out(db: Session, *, line, origin: StockOrigin) -> None:
    adjust_stock(
        db,
        product_id=line.product_id,
        size=line.size,
        color=line.color,
        origin=origin,
        delta=-int(line.quantity_shipped),
    )


def put_back(db: Session, *, line, origin: StockOrigin, quantity: int) -> None:
    adjust_stock(
        db,
        product_id=line.product_id,
        size=line.size,
        color=line.color,
        origin=origin,
        delta=int(quantity),
    )


def list_available_variants(db: Session, *, origin: StockOrigin) -> list[dict]:
    column = InventoryLevel.store_qty if origin == StockOrigin.STORE else InventoryLevel.factory_qty
    rows = db.execute(
        select(
            Product.id,
            Product.reference,
            Product.name,
            Product.sale_price,
            InventoryLevel.size,
            InventoryLevel.color,
            InventoryLevel.store_qty,
            InventoryLevel.factory_qty,
        )
        .join(InventoryLevel, InventoryLevel.product_id == Product.id)
        .where(Product.active.is_(True), column > 0)
        .order_by(Product.reference.asc(), InventoryLevel.size.asc(), InventoryLevel.color.asc())
    ).all()
    return [
        {
            'product_id': row.id,
            'reference': row.reference,
            'name': row.name,
            'sale_price': row.sale_price,
            'size': row.size,
            'color': row.color,
            'store_qty': row.store_qty,
            'factory_qty': row.factory_qty,
        }
        for row in rows
    ]
