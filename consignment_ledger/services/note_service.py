from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from consignment_ledger.config import settings
from consignment_ledger.errors import NotFoundError, ValidationError
from consignment_ledger.models import (
    ConsignmentInstallment,
    ConsignmentLineItem,
    ConsignmentNote,
    NoteStatus,
    Seller,
    StockOrigin,
)
from consignment_ledger.services import stock_service
from consignment_ledger.services.balance_service import remaining_quantity, to_money
from consignment_ledger.services.storage_utils import flush, storage_guard

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[NoteStatus, set[NoteStatus]] = {
    NoteStatus.OPEN: {NoteStatus.CLOSED, NoteStatus.CANCELLED},
    NoteStatus.CLOSED: {NoteStatus.OPEN, NoteStatus.CANCELLED},
    NoteStatus.CANCELLED: set(),
}


@dataclass(frozen=True)
class NewLine:
    reference: str
    size: str
    color: str
    quantity: int
    unit_price: Decimal


def can_transition(current: NoteStatus, target: NoteStatus) -> bool:
    return current == target or target in _ALLOWED_TRANSITIONS[current]


def format_note_number(sequence: int) -> str:
    return f'{settings.note_number_prefix}{sequence:0{settings.note_number_width}d}'


def next_note_number(db: Session) -> str:
    numbers = db.execute(select(ConsignmentNote.number)).scalars()
    highest = max((int(digits) for digits in (re.sub(r'\D', '', number or '') for number in numbers) if digits), default=0)
    return format_note_number(highest + 1)


def get_note(db: Session, *, note_id: int) -> ConsignmentNote:
    note = db.get(ConsignmentNote, note_id)
    if note is None:
        raise NotFoundError('Consignment note not found')
    return note


def _validate_lines(lines: list[NewLine]) -> None:
    if not lines:
        raise ValidationError('Add at least one item to the note')
    for line in lines:
        if not (line.reference or '').strip() or not (line.size or '').strip() or not (line.color or '').strip():
            raise ValidationError('Fill in reference, size and color for every item')
        if int(line.quantity) < 1:
            raise ValidationError('Item quantity must be at least 1')
        if to_money(line.unit_price) < 0:
            raise ValidationError('Unit price cannot be negative')


def _insert_lines(db: Session, *, note: ConsignmentNote, lines: list[NewLine]) -> list[ConsignmentLineItem]:
    created: list[ConsignmentLineItem] = []
    for line in lines:
        reference, size, color = line.reference.strip(), line.size.strip(), line.color.strip()
        item = ConsignmentLineItem(
            note_id=note.id,
            product_id=stock_service.resolve_product_id(db, reference=reference, size=size, color=color),
            reference=reference,
            size=size,
            color=color,
            quantity_shipped=int(line.quantity),
            quantity_returned=0,
            unit_price=to_money(line.unit_price),
        )
        db.add(item)
        stock_service.take_out(db, line=item, origin=note.origin)
        created.append(item)
    return created


def create_note(
    db: Session,
    *,
    seller_id: int | None,
    origin: StockOrigin,
    due_date: date | None,
    notes: str | None,
    lines: list[NewLine],
    issue_date: date | None = None,
) -> ConsignmentNote:
    if not seller_id:
        raise ValidationError('Select the seller')
    _validate_lines(lines)
    if db.get(Seller, seller_id) is None:
        raise NotFoundError('Seller not found')

    note = ConsignmentNote(
        number=next_note_number(db),
        seller_id=seller_id,
        issue_date=issue_date or date.today(),
        due_date=due_date,
        origin=origin,
        notes=(notes or '').strip() or None,
        status=NoteStatus.OPEN,
        archived=False,
    )
    db.add(note)
    flush(db, action='create the consignment note')

    _insert_lines(db, note=note, lines=lines)
    flush(db, action='save the note items')
    logger.info('Consignment note %s created for seller %s with %s items', note.number, seller_id, len(lines))
    return note


def update_header(
    db: Session,
    *,
    note_id: int,
    due_date: date | None,
    status: NoteStatus,
) -> ConsignmentNote:
    note = get_note(db, note_id=note_id)
    if status != note.status:
        if note.archived:
            raise ValidationError('Unarchive the note before changing its status')
        if not can_transition(note.status, status):
            raise ValidationError(f'Cannot change a {note.status.value.lower()} note to {status.value.lower()}')

    note.due_date = due_date
    note.status = status
    flush(db, action='update the consignment note')
    return note


def toggle_archive(db: Session, *, note_id: int) -> ConsignmentNote:
    note = get_note(db, note_id=note_id)
    if not note.archived and note.status != NoteStatus.CLOSED:
        raise ValidationError('Only closed notes may be archived')

    note.archived = not note.archived
    flush(db, action='archive the consignment note')
    logger.info('Consignment note %s %s', note.number, 'archived' if note.archived else 'unarchived')
    return note


def delete_note(db: Session, *, note_id: int) -> str:
    note = get_note(db, note_id=note_id)
    if not note.archived:
        raise ValidationError('Only archived notes may be deleted')

    number = note.number
    with storage_guard('delete the consignment note'):
        db.execute(delete(ConsignmentInstallment).where(ConsignmentInstallment.note_id == note.id))
        db.execute(delete(ConsignmentLineItem).where(ConsignmentLineItem.note_id == note.id))
        db.execute(delete(ConsignmentNote).where(ConsignmentNote.id == note.id))
    logger.info('Consignment note %s permanently deleted', number)
    return number


def replace_lines(db: Session, *, note_id: int, lines: list[NewLine]) -> list[ConsignmentLineItem]:
    note = get_note(db, note_id=note_id)
    if note.archived or note.status == NoteStatus.CANCELLED:
        raise ValidationError('Items can only be edited on active notes')
    _validate_lines(lines)

    existing = db.execute(select(ConsignmentLineItem).where(ConsignmentLineItem.note_id == note.id)).scalars().all()
    for item in existing:
        # Returned units were already put back when the return was recorded.
        stock_service.put_back(db, line=item, origin=note.origin, quantity=remaining_quantity(item))
    with storage_guard('replace the note items'):
        db.execute(delete(ConsignmentLineItem).where(ConsignmentLineItem.note_id == note.id))
    db.expire(note, ['lines'])

    created = _insert_lines(db, note=note, lines=lines)
    flush(db, action='replace the note items')
    logger.info('Consignment note %s items replaced (%s -> %s lines)', note.number, len(existing), len(created))
    return created
