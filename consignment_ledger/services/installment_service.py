from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_DOWN, Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from consignment_ledger.errors import NotFoundError, ValidationError
from consignment_ledger.models import ConsignmentInstallment, ConsignmentLineItem, ConsignmentNote
from consignment_ledger.services.balance_service import CENT, ZERO, NoteBalance, compute_note_balance, to_money
from consignment_ledger.services.storage_utils import flush, storage_guard

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def add_months(start: date, months: int) -> date:
    """Shift ``start`` by whole months, clamping to the last day of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass
class InstallmentDraft:
    sequence: int
    amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    paid: bool = False
    paid_at: datetime | None = None
    due_date: date | None = None
    memo: str | None = None
    id: int | None = None
    deleted: bool = False
    key: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_row(cls, row: ConsignmentInstallment) -> InstallmentDraft:
        return cls(
            id=row.id,
            sequence=row.sequence,
            due_date=row.due_date,
            amount=to_money(row.amount),
            paid_amount=to_money(row.paid_amount),
            paid=bool(row.paid),
            paid_at=row.paid_at,
            memo=row.memo,
        )


def mark_paid(draft: InstallmentDraft, *, now: datetime | None = None) -> InstallmentDraft:
    draft.paid = True
    if draft.paid_amount <= 0:
        draft.paid_amount = to_money(draft.amount)
    if draft.paid_at is None:
        draft.paid_at = now or _now()
    return draft


def reverse_payment(draft: InstallmentDraft) -> InstallmentDraft:
    draft.paid = False
    draft.paid_amount = ZERO
    draft.paid_at = None
    return draft


def set_paid_amount(draft: InstallmentDraft, value: Decimal, *, now: datetime | None = None) -> InstallmentDraft:
    """Record how much of an installment was received.

    Reaching the scheduled amount marks the installment paid. Lowering the value
    keeps the paid flag; only clearing it to zero unmarks the payment.
    """
    draft.paid_amount = max(to_money(value), ZERO)
    if draft.paid_amount <= 0:
        draft.paid = False
        draft.paid_at = None
    elif draft.paid_amount >= to_money(draft.amount):
        draft.paid = True
        if draft.paid_at is None:
            draft.paid_at = now or _now()
    return draft


def settle_payment_state(draft: InstallmentDraft, *, now: datetime | None = None) -> InstallmentDraft:
    """Bring a submitted draft's paid flag and paid amount into agreement."""
    if draft.paid and to_money(draft.paid_amount) <= 0:
        return mark_paid(draft, now=now)
    return set_paid_amount(draft, draft.paid_amount, now=now)


def split_equally(total: Decimal, count: int) -> list[Decimal]:
    """Split ``total`` into ``count`` cent amounts; the first absorbs the rounding remainder."""
    if count < 1:
        raise ValidationError('Installment count must be at least 1')
    total = to_money(total)
    base = (total / Decimal(count)).quantize(CENT, rounding=ROUND_DOWN)
    remainder = to_money(total - base * count)
    return [base + remainder] + [base] * (count - 1)


class InstallmentEditSession:
    """Working copy of a note's installments, persisted in one ``commit``."""

    def __init__(self, note_id: int, lines: list, installments: list[InstallmentDraft]) -> None:
        self.note_id = note_id
        self.lines = list(lines)
        self.installments = list(installments)

    @classmethod
    def load(cls, db: Session, *, note_id: int) -> InstallmentEditSession:
        if db.get(ConsignmentNote, note_id) is None:
            raise NotFoundError('Consignment note not found')
        lines = db.execute(select(ConsignmentLineItem).where(ConsignmentLineItem.note_id == note_id)).scalars().all()
        rows = db.execute(
            select(ConsignmentInstallment)
            .where(ConsignmentInstallment.note_id == note_id)
            .order_by(ConsignmentInstallment.sequence.asc(), ConsignmentInstallment.id.asc())
        ).scalars().all()
        return cls(note_id, lines, [InstallmentDraft.from_row(row) for row in rows])

    @property
    def active(self) -> list[InstallmentDraft]:
        return [draft for draft in self.installments if not draft.deleted]

    @property
    def deleted_ids(self) -> set[int]:
        return {draft.id for draft in self.installments if draft.deleted and draft.id is not None}

    def balance(self) -> NoteBalance:
        return compute_note_balance(self.lines, self.installments)

    def get(self, key: str) -> InstallmentDraft:
        for draft in self.installments:
            if draft.key == key:
                return draft
        raise NotFoundError('Installment not found')

    def next_sequence(self) -> int:
        return max((draft.sequence or 0 for draft in self.active), default=0) + 1

    def add_manual(self) -> InstallmentDraft:
        draft = InstallmentDraft(sequence=self.next_sequence())
        self.installments.append(draft)
        return draft

    def generate_equal(
        self,
        count: int,
        first_due_date: date | None = None,
        *,
        today: date | None = None,
    ) -> list[InstallmentDraft]:
        if count < 1:
            raise ValidationError('Installment count must be at least 1')
        outstanding = self.balance().outstanding_balance
        if outstanding <= 0:
            raise ValidationError('Nothing to split: the payable total is already settled')

        start = first_due_date or today or date.today()
        sequence = self.next_sequence()
        generated = [
            InstallmentDraft(sequence=sequence + index, amount=amount, due_date=add_months(start, index))
            for index, amount in enumerate(split_equally(outstanding, count))
        ]
        self.installments.extend(generated)
        return generated

    def delete(self, key: str) -> None:
        draft = self.get(key)
        if draft.id is not None:
            draft.deleted = True
        else:
            self.installments = [item for item in self.installments if item.key != key]

    def _validate(self) -> None:
        seen: set[int] = set()
        for draft in self.active:
            if draft.sequence is None or int(draft.sequence) < 1:
                raise ValidationError('Installment numbers must be positive')
            if draft.sequence in seen:
                raise ValidationError(f'Installment number {draft.sequence} is used more than once')
            seen.add(draft.sequence)
            if to_money(draft.amount) < 0 or to_money(draft.paid_amount) < 0:
                raise ValidationError('Installment amounts cannot be negative')

    def commit(self, db: Session, *, now: datetime | None = None) -> InstallmentEditSession:
        self._validate()
        timestamp = now or _now()
        active = self.active
        for draft in active:
            settle_payment_state(draft, now=timestamp)
        existing = [draft for draft in active if draft.id is not None]
        new = [draft for draft in active if draft.id is None]
        deleted_ids = self.deleted_ids

        rows_by_id: dict[int, ConsignmentInstallment] = {}
        if existing:
            rows_by_id = {
                row.id: row
                for row in db.execute(
                    select(ConsignmentInstallment).where(
                        ConsignmentInstallment.note_id == self.note_id,
                        ConsignmentInstallment.id.in_([draft.id for draft in existing]),
                    )
                ).scalars()
            }

        for draft in existing:
            row = rows_by_id.get(draft.id)
            if row is None:
                raise NotFoundError(f'Installment {draft.id} no longer exists')
            self._copy_into(row, draft, timestamp)

        for draft in new:
            row = ConsignmentInstallment(note_id=self.note_id)
            self._copy_into(row, draft, timestamp)
            db.add(row)

        if deleted_ids:
            with storage_guard('delete installments'):
                db.execute(
                    delete(ConsignmentInstallment).where(
                        ConsignmentInstallment.note_id == self.note_id,
                        ConsignmentInstallment.id.in_(deleted_ids),
                    )
                )

        flush(db, action='save the installments')
        logger.info(
            'Note %s installments saved: %s updated, %s inserted, %s deleted',
            self.note_id,
            len(existing),
            len(new),
            len(deleted_ids),
        )
        return InstallmentEditSession.load(db, note_id=self.note_id)

    @staticmethod
    def _copy_into(row: ConsignmentInstallment, draft: InstallmentDraft, timestamp: datetime) -> None:
        row.sequence = int(draft.sequence)
        row.due_date = draft.due_date
        row.amount = to_money(draft.amount)
        row.paid_amount = to_money(draft.paid_amount)
        row.paid = bool(draft.paid)
        row.paid_at = (draft.paid_at or timestamp) if draft.paid else None
        row.memo = (draft.memo or '').strip() or None
