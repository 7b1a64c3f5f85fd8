from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from consignment_ledger.errors import NotFoundError, ValidationError
from consignment_ledger.models import ConsignmentLineItem, ConsignmentNote, NoteStatus
from consignment_ledger.services import stock_service
from consignment_ledger.services.balance_service import remaining_quantity
from consignment_ledger.services.storage_utils import flush

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReturnUpdate:
    line_id: int
    returned_quantity: int


def clamp_returned(shipped: int, requested: int) -> int:
    return min(max(int(requested), 0), int(shipped))


def _get_line(db: Session, *, line_id: int) -> ConsignmentLineItem:
    line = db.get(ConsignmentLineItem, line_id)
    if line is None:
        raise NotFoundError('Consignment item not found')
    return line


def _ensure_returns_allowed(note: ConsignmentNote) -> None:
    if note.archived:
        raise ValidationError('Archived notes cannot receive returns')
    if note.status == NoteStatus.CANCELLED:
        raise ValidationError('Cancelled notes cannot receive returns')


def _apply_returned(db: Session, *, note: ConsignmentNote, line: ConsignmentLineItem, requested: int) -> int:
    previous = int(line.quantity_returned or 0)
    clamped = clamp_returned(line.quantity_shipped, requested)
    delta = clamped - previous
    line.quantity_returned = clamped
    # Returned units go back on the shelf they came from; undoing a return takes them out again.
    stock_service.put_back(db, line=line, origin=note.origin, quantity=delta)
    return delta


def record_return(db: Session, *, line_id: int, returned_quantity: int) -> ConsignmentLineItem:
    """Set the absolute returned quantity for one line, clamped to ``[0, shipped]``."""
    line = _get_line(db, line_id=line_id)
    note = line.note
    _ensure_returns_allowed(note)

    delta = _apply_returned(db, note=note, line=line, requested=returned_quantity)
    flush(db, action='record the return')
    if delta:
        logger.info('Note %s line %s returned quantity moved by %s', note.number, line.id, delta)
    return line


def quick_return(db: Session, *, line_id: int, quantity: int) -> ConsignmentLineItem:
    """Return ``quantity`` more units of a line; negative input is treated as zero."""
    line = _get_line(db, line_id=line_id)
    requested = int(line.quantity_returned or 0) + max(int(quantity), 0)
    return record_return(db, line_id=line_id, returned_quantity=requested)


def bulk_set_returns(db: Session, *, note_id: int, updates: list[ReturnUpdate]) -> list[ConsignmentLineItem]:
    note = db.get(ConsignmentNote, note_id)
    if note is None:
        raise NotFoundError('Consignment note not found')
    _ensure_returns_allowed(note)

    lines_by_id = {
        line.id: line
        for line in db.execute(select(ConsignmentLineItem).where(ConsignmentLineItem.note_id == note.id)).scalars()
    }
    changed: list[ConsignmentLineItem] = []
    for update in updates:
        line = lines_by_id.get(update.line_id)
        if line is None:
            raise ValidationError(f'Item {update.line_id} does not belong to note {note.number}')
        if _apply_returned(db, note=note, line=line, requested=update.returned_quantity):
            changed.append(line)

    flush(db, action='save the returns')
    logger.info('Note %s returns saved, %s lines changed', note.number, len(changed))
    return changed


def list_returnable_lines(db: Session, *, seller_id: int) -> list[dict]:
    rows = db.execute(
        select(ConsignmentLineItem, ConsignmentNote.number, ConsignmentNote.status)
        .join(ConsignmentNote, ConsignmentNote.id == ConsignmentLineItem.note_id)
        .where(
            ConsignmentNote.seller_id == seller_id,
            ConsignmentNote.status == NoteStatus.OPEN,
            ConsignmentNote.archived.is_(False),
        )
        .order_by(ConsignmentNote.number.asc(), ConsignmentLineItem.id.asc())
    ).all()
    return [
        {
            'id': line.id,
            'note_id': line.note_id,
            'number': number,
            'reference': line.reference,
            'size': line.size,
            'color': line.color,
            'quantity_shipped': line.quantity_shipped,
            'quantity_returned': line.quantity_returned,
            'remaining': remaining_quantity(line),
            'unit_price': line.unit_price,
            'note_status': status.value,
        }
        for line, number, status in rows
    ]
