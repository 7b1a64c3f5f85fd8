from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from consignment_ledger.models import (
    ConsignmentInstallment,
    ConsignmentLineItem,
    ConsignmentNote,
    NoteStatus,
    Product,
    Seller,
    SellerStatus,
)
from consignment_ledger.services.balance_service import ZERO, compute_note_balance, count_note_items, to_money

logger = logging.getLogger(__name__)

RECONCILED_FIELDS = ('original_total', 'returned_value', 'sold_value', 'total_paid', 'outstanding_balance')


def _group_by_note(rows) -> dict[int, list]:
    grouped: dict[int, list] = defaultdict(list)
    for row in rows:
        grouped[row.note_id].append(row)
    return grouped


def summarize_note(note: ConsignmentNote, seller_name: str | None, lines: list, installments: list) -> dict:
    balance = compute_note_balance(lines, installments)
    counts = count_note_items(lines)
    sold_value = balance.sold_value
    # Units are counted as sold in the same proportion as their value is paid.
    if balance.current_payable > 0:
        sold_items = int((Decimal(counts.remaining) * sold_value / balance.current_payable).to_integral_value())
    else:
        sold_items = 0
    return {
        'id': note.id,
        'number': note.number,
        'seller_id': note.seller_id,
        'seller_name': seller_name,
        'issue_date': note.issue_date,
        'due_date': note.due_date,
        'origin': note.origin.value,
        'status': note.status.value,
        'archived': note.archived,
        'original_total': balance.original_total,
        'returned_value': balance.returned_value,
        'current_payable': balance.current_payable,
        'sold_value': sold_value,
        'total_scheduled': balance.total_scheduled,
        'total_paid': balance.total_paid,
        'outstanding_balance': balance.outstanding_balance,
        'items_total': counts.shipped,
        'items_returned': counts.returned,
        'items_sold': sold_items,
    }


def list_note_summaries(
    db: Session,
    *,
    archived: bool | None = None,
    seller_id: int | None = None,
    search: str | None = None,
    note_ids: list[int] | None = None,
) -> list[dict]:
    query = (
        select(ConsignmentNote, Seller.name)
        .join(Seller, Seller.id == ConsignmentNote.seller_id)
        .order_by(ConsignmentNote.issue_date.desc(), ConsignmentNote.id.desc())
    )
    if archived is not None:
        query = query.where(ConsignmentNote.archived.is_(archived))
    if seller_id:
        query = query.where(ConsignmentNote.seller_id == seller_id)
    if note_ids is not None:
        query = query.where(ConsignmentNote.id.in_(note_ids))
    term = (search or '').strip().lower()
    if term:
        pattern = f'%{term}%'
        query = query.where(or_(func.lower(ConsignmentNote.number).like(pattern), func.lower(Seller.name).like(pattern)))

    rows = db.execute(query).all()
    if not rows:
        return []

    ids = [note.id for note, _ in rows]
    lines = _group_by_note(
        db.execute(select(ConsignmentLineItem).where(ConsignmentLineItem.note_id.in_(ids))).scalars().all()
    )
    installments = _group_by_note(
        db.execute(select(ConsignmentInstallment).where(ConsignmentInstallment.note_id.in_(ids))).scalars().all()
    )
    return [summarize_note(note, seller_name, lines[note.id], installments[note.id]) for note, seller_name in rows]


def get_note_summary(db: Session, *, note_id: int) -> dict | None:
    summaries = list_note_summaries(db, note_ids=[note_id])
    return summaries[0] if summaries else None


def reconcile_summary(stored: Mapping, computed: Mapping) -> list[str]:
    """Return the money fields where an externally kept summary disagrees with the ledger."""
    mismatched = [name for name in RECONCILED_FIELDS if name in stored and to_money(stored[name]) != to_money(computed[name])]
    if mismatched:
        logger.warning('Summary for note %s drifted on %s', computed.get('number'), ', '.join(mismatched))
    return mismatched


def seller_cards(db: Session) -> list[dict]:
    sellers = db.execute(
        select(Seller.id, Seller.name).where(Seller.status == SellerStatus.ACTIVE).order_by(Seller.name.asc())
    ).all()
    open_by_seller: dict[int, list[dict]] = defaultdict(list)
    for summary in list_note_summaries(db, archived=False):
        if summary['status'] == NoteStatus.OPEN.value:
            open_by_seller[summary['seller_id']].append(summary)
    return [
        {
            'id': seller.id,
            'name': seller.name,
            'open_notes': len(open_by_seller[seller.id]),
            'open_balance': sum((item['outstanding_balance'] for item in open_by_seller[seller.id]), ZERO),
        }
        for seller in sellers
    ]


def _top_reference(totals: dict[str, int]) -> tuple[str | None, int | None]:
    ranked = sorted(((-qty, reference) for reference, qty in totals.items() if qty > 0))
    if not ranked:
        return None, None
    qty, reference = ranked[0]
    return reference, -qty


def consignment_kpis(db: Session) -> dict:
    rows = db.execute(
        select(ConsignmentLineItem.reference, ConsignmentLineItem.quantity_shipped, ConsignmentLineItem.quantity_returned)
        .join(ConsignmentNote, ConsignmentNote.id == ConsignmentLineItem.note_id)
        .where(ConsignmentNote.archived.is_(False), ConsignmentNote.status == NoteStatus.OPEN)
    ).all()

    out_by_reference: dict[str, int] = defaultdict(int)
    returned_by_reference: dict[str, int] = defaultdict(int)
    for row in rows:
        out_by_reference[row.reference] += max(row.quantity_shipped - row.quantity_returned, 0)
        returned_by_reference[row.reference] += row.quantity_returned

    top_out_reference, top_out_qty = _top_reference(out_by_reference)
    top_returned_reference, top_returned_qty = _top_reference(returned_by_reference)
    references = [ref for ref in (top_out_reference, top_returned_reference) if ref]
    names: dict[str, str] = {}
    if references:
        names = dict(db.execute(select(Product.reference, Product.name).where(Product.reference.in_(references))).all())

    return {
        'total_out': sum(out_by_reference.values()),
        'top_out_reference': top_out_reference,
        'top_out_qty': top_out_qty,
        'top_out_name': names.get(top_out_reference) if top_out_reference else None,
        'top_returned_reference': top_returned_reference,
        'top_returned_qty': top_returned_qty,
        'top_returned_name': names.get(top_returned_reference) if top_returned_reference else None,
    }
