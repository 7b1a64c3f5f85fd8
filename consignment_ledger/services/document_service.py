from __future__ import annotations

import re
from decimal import Decimal
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.orm import Session

from consignment_ledger.config import settings
from consignment_ledger.errors import NotFoundError, PresentationError
from consignment_ledger.models import ConsignmentLineItem, ConsignmentNote, Product, Seller, StockOrigin
from consignment_ledger.services.balance_service import line_payable_value, remaining_quantity, to_money
from consignment_ledger.services.summary_service import get_note_summary

ORIGIN_LABELS = {StockOrigin.STORE: 'Store', StockOrigin.FACTORY: 'Factory'}


def format_brl(value: Decimal | int | float | None) -> str:
    amount = to_money(value)
    sign = '-' if amount < 0 else ''
    whole, cents = f'{abs(amount):,.2f}'.split('.')
    return f'{sign}R$ {whole.replace(",", ".")},{cents}'


def only_digits(value: str | None) -> str:
    return re.sub(r'\D', '', value or '')


def _note_or_404(db: Session, note_id: int) -> ConsignmentNote:
    note = db.get(ConsignmentNote, note_id)
    if note is None:
        raise NotFoundError('Consignment note not found')
    return note


def build_print_context(db: Session, *, note_id: int) -> dict:
    note = _note_or_404(db, note_id)
    lines = db.execute(
        select(ConsignmentLineItem)
        .where(ConsignmentLineItem.note_id == note.id)
        .order_by(ConsignmentLineItem.reference.asc(), ConsignmentLineItem.id.asc())
    ).scalars().all()

    references = sorted({line.reference for line in lines if line.reference})
    names: dict[str, str] = {}
    if references:
        names = dict(db.execute(select(Product.reference, Product.name).where(Product.reference.in_(references))).all())

    rows = [
        {
            'index': index,
            'reference': line.reference,
            'name': names.get(line.reference) or line.reference,
            'color': line.color,
            'size': line.size,
            'shipped': line.quantity_shipped,
            'returned': line.quantity_returned,
            'remaining': remaining_quantity(line),
            'unit_price': to_money(line.unit_price),
            'subtotal': line_payable_value(line),
        }
        for index, line in enumerate(lines, start=1)
    ]
    return {
        'business': {
            'name': settings.business_name,
            'tax_id': settings.business_tax_id,
            'phone': settings.business_phone,
        },
        'note': note,
        'seller_name': note.seller.name if note.seller else None,
        'origin_label': ORIGIN_LABELS[note.origin],
        'rows': rows,
        'summary': get_note_summary(db, note_id=note.id),
    }


def build_chat_message(summary: dict) -> str:
    return (
        f"Hello {summary['seller_name'] or ''}!\n"
        f"Consignment note {summary['number']} ({summary['issue_date']:%d/%m/%Y})\n"
        f"Items shipped: {summary['items_total']} | returned: {summary['items_returned']}\n"
        f"Original total: {format_brl(summary['original_total'])}\n"
        f"Returned: {format_brl(summary['returned_value'])}\n"
        f"Paid: {format_brl(summary['total_paid'])}\n"
        f"Balance due: {format_brl(summary['outstanding_balance'])}"
    )


def build_chat_link(db: Session, *, note_id: int) -> str:
    note = _note_or_404(db, note_id)
    phone = only_digits(db.execute(select(Seller.phone).where(Seller.id == note.seller_id)).scalar_one_or_none())
    if not phone:
        raise PresentationError('Seller has no phone number to message')
    summary = get_note_summary(db, note_id=note.id)
    if summary is None:
        raise PresentationError('Note summary is not available')
    base_url = settings.chat_base_url.rstrip('/')
    return f'{base_url}/{settings.chat_country_code}{phone}?text={quote(build_chat_message(summary), safe="")}'
