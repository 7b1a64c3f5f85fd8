from __future__ import annotations

import logging

import jinja2
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from consignment_ledger.config import settings
from consignment_ledger.db import get_db
from consignment_ledger.errors import LedgerError, NotFoundError, PresentationError, StorageError, ValidationError
from consignment_ledger.models import StockOrigin
from consignment_ledger.schemas import (
    BalanceOut,
    BulkReturnsIn,
    ChatLinkOut,
    InstallmentGenerateIn,
    InstallmentOut,
    InstallmentPlanOut,
    InstallmentsReplace,
    KpisOut,
    LineIn,
    LineOut,
    LinesReplace,
    NoteCreate,
    NoteDetailOut,
    NoteHeaderUpdate,
    NoteSummaryOut,
    QuickReturnIn,
    ReturnableLineOut,
    SellerCardOut,
    VariantOut,
)
from consignment_ledger.security.csrf import verify_csrf
from consignment_ledger.services import note_service, return_service, stock_service, summary_service
from consignment_ledger.services.document_service import build_chat_link, build_print_context
from consignment_ledger.services.installment_service import InstallmentDraft, InstallmentEditSession
from consignment_ledger.services.storage_utils import storage_guard

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/consignment', tags=['consignment'])

_STATUS_BY_ERROR: list[tuple[type[LedgerError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PresentationError, 422),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def _http_error(exc: LedgerError, *, action: str) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, StorageError):
        logger.exception('Failed to %s', action)
    else:
        logger.warning('Rejected %s: %s', action, exc)
    return HTTPException(status_code=status_code, detail=str(exc))


def _commit(db: Session) -> None:
    with storage_guard('save changes'):
        db.commit()


def _new_lines(lines: list[LineIn]) -> list[note_service.NewLine]:
    return [
        note_service.NewLine(
            reference=line.reference,
            size=line.size,
            color=line.color,
            quantity=line.quantity,
            unit_price=line.unit_price,
        )
        for line in lines
    ]


def _summary_or_404(db: Session, note_id: int) -> dict:
    summary = summary_service.get_note_summary(db, note_id=note_id)
    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Consignment note not found')
    return summary


def _plan_out(session: InstallmentEditSession) -> InstallmentPlanOut:
    return InstallmentPlanOut(
        installments=[InstallmentOut.model_validate(draft) for draft in session.active],
        balance=BalanceOut.model_validate(session.balance()),
    )


@router.get('/notes', response_model=list[NoteSummaryOut])
def list_notes(
    archived: bool = False,
    seller_id: int | None = None,
    q: str | None = None,
    db: Session = Depends(get_db),
):
    return summary_service.list_note_summaries(db, archived=archived, seller_id=seller_id, search=q)


@router.post('/notes', response_model=NoteSummaryOut, status_code=status.HTTP_201_CREATED)
def create_note(
    payload: NoteCreate,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        note = note_service.create_note(
            db,
            seller_id=payload.seller_id,
            origin=payload.origin or StockOrigin(settings.default_stock_origin),
            due_date=payload.due_date,
            notes=payload.notes,
            lines=_new_lines(payload.lines),
        )
        _commit(db)
    except LedgerError as exc:
        raise _http_error(exc, action='create consignment note') from exc
    return _summary_or_404(db, note.id)


@router.get('/notes/{note_id}', response_model=NoteDetailOut)
def note_detail(note_id: int, db: Session = Depends(get_db)):
    try:
        note = note_service.get_note(db, note_id=note_id)
        session = InstallmentEditSession.load(db, note_id=note_id)
    except LedgerError as exc:
        raise _http_error(exc, action='open consignment note') from exc
    return NoteDetailOut(
        summary=_summary_or_404(db, note_id),
        notes=note.notes,
        lines=[LineOut.model_validate(line) for line in session.lines],
        installments=[InstallmentOut.model_validate(draft) for draft in session.active],
    )


@router.patch('/notes/{note_id}', response_model=NoteSummaryOut)
def update_note(
    note_id: int,
    payload: NoteHeaderUpdate,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        note_service.update_header(db, note_id=note_id, due_date=payload.due_date, status=payload.status)
        _commit(db)
    except LedgerError as exc:
        raise _http_error(exc, action='update consignment note') from exc
    return _summary_or_404(db, note_id)


@router.put('/notes/{note_id}/lines', response_model=list[LineOut])
def replace_note_lines(
    note_id: int,
    payload: LinesReplace,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        lines = note_service.replace_lines(db, note_id=note_id, lines=_new_lines(payload.lines))
        _commit(db)
    except LedgerError as exc:
        raise _http_error(exc, action='replace note items') from exc
    return [LineOut.model_validate(line) for line in lines]


@router.post('/notes/{note_id}/archive', response_model=NoteSummaryOut)
def toggle_note_archive(
    note_id: int,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        note_service.toggle_archive(db, note_id=note_id)
        _commit(db)
    except LedgerError as exc:
        raise _http_error(exc, action='archive consignment note') from exc
    return _summary_or_404(db, note_id)


@router.delete('/notes/{note_id}')
def delete_note(
    note_id: int,
    confirm_number: str = Query(default=''),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        note = note_service.get_note(db, note_id=note_id)
        if confirm_number.strip().upper() != note.number.upper():
            raise ValidationError(f'Type the note number {note.number} to confirm permanent deletion')
        number = note_service.delete_note(db, note_id=note_id)
        _commit(db)
    except LedgerError as exc:
        raise _http_error(exc, action='delete consignment note') from exc
    return {'deleted': number}


@router.put('/notes/{note_id}/returns', response_model=list[LineOut])
def save_returns(
    note_id: int,
    payload: BulkReturnsIn,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    updates = [
        return_service.ReturnUpdate(line_id=item.line_id, returned_quantity=item.returned_quantity)
        for item in payload.updates
    ]
    try:
        return_service.bulk_set_returns(db, note_id=note_id, updates=updates)
        _commit(db)
    except LedgerError as exc:
        raise _http_error(exc, action='save returns') from exc
    lines = note_service.get_note(db, note_id=note_id).lines
    return [LineOut.model_validate(line) for line in lines]


@router.post('/lines/{line_id}/return', response_model=LineOut)
def quick_return(
    line_id: int,
    payload: QuickReturnIn,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        line = return_service.quick_return(db, line_id=line_id, quantity=payload.quantity)
        _commit(db)
    except LedgerError as exc:
        raise _http_error(exc, action='record return') from exc
    return LineOut.model_validate(line)


@router.get('/sellers/{seller_id}/returnable-lines', response_model=list[ReturnableLineOut])
def returnable_lines(seller_id: int, db: Session = Depends(get_db)):
    return return_service.list_returnable_lines(db, seller_id=seller_id)


@router.get('/sellers/cards', response_model=list[SellerCardOut])
def seller_cards(db: Session = Depends(get_db)):
    return summary_service.seller_cards(db)


@router.get('/kpis', response_model=KpisOut)
def kpis(db: Session = Depends(get_db)):
    return summary_service.consignment_kpis(db)


@router.get('/variants', response_model=list[VariantOut])
def available_variants(origin: StockOrigin = StockOrigin.FACTORY, db: Session = Depends(get_db)):
    return stock_service.list_available_variants(db, origin=origin)


@router.put('/notes/{note_id}/installments', response_model=InstallmentPlanOut)
def save_installments(
    note_id: int,
    payload: InstallmentsReplace,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        loaded = InstallmentEditSession.load(db, note_id=note_id)
        session = InstallmentEditSession(
            note_id,
            loaded.lines,
            [InstallmentDraft(**item.model_dump()) for item in payload.installments],
        )
        saved = session.commit(db)
        _commit(db)
    except LedgerError as exc:
        raise _http_error(exc, action='save installments') from exc
    return _plan_out(saved)


@router.post('/notes/{note_id}/installments/generate', response_model=InstallmentPlanOut)
def preview_equal_installments(
    note_id: int,
    payload: InstallmentGenerateIn,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        session = InstallmentEditSession.load(db, note_id=note_id)
        session.generate_equal(payload.count, payload.first_due_date)
    except LedgerError as exc:
        raise _http_error(exc, action='generate installments') from exc
    return _plan_out(session)


@router.get('/notes/{note_id}/print', response_class=HTMLResponse)
def print_note(note_id: int, request: Request, db: Session = Depends(get_db)):
    try:
        context = build_print_context(db, note_id=note_id)
        try:
            return request.app.state.templates.TemplateResponse(request, 'note_print.html', context)
        except jinja2.TemplateError as exc:
            raise PresentationError('Could not render the printable note') from exc
    except LedgerError as exc:
        raise _http_error(exc, action='print consignment note') from exc


@router.get('/notes/{note_id}/chat-link', response_model=ChatLinkOut)
def chat_link(note_id: int, db: Session = Depends(get_db)):
    try:
        url = build_chat_link(db, note_id=note_id)
    except LedgerError as exc:
        raise _http_error(exc, action='build chat link') from exc
    return ChatLinkOut(url=url)
