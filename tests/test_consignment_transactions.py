from __future__ import annotations

import unittest
from unittest.mock import patch

from db_support import add_seller, add_variant, make_session_factory
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from consignment_ledger.main import app
from consignment_ledger.models import ConsignmentInstallment, ConsignmentLineItem, ConsignmentNote, InventoryLevel
from consignment_ledger.security.csrf import CSRF_COOKIE_NAME, CSRF_HEADER_NAME
from consignment_ledger.services import storage_utils
from consignment_ledger.services.storage_utils import storage_guard

_real_execute = Session.execute


def _disk_error(statement: str) -> OperationalError:
    return OperationalError(statement, {}, Exception('disk I/O error'))


class RequestTransactionTests(unittest.TestCase):
    """Each request runs in the session from ``get_db`` and is rolled back whole on failure."""

    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        with self.session_factory() as db:
            self.seller_id = add_seller(db).id
            add_variant(db, store_qty=5, factory_qty=20)
            db.commit()

        session_patch = patch('consignment_ledger.db.SessionLocal', self.session_factory)
        session_patch.start()
        self.addCleanup(session_patch.stop)

        self.client = TestClient(app)
        self.addCleanup(self.client.close)
        self.client.get('/health')
        self.headers = {CSRF_HEADER_NAME: self.client.cookies[CSRF_COOKIE_NAME]}

    def _count(self, model) -> int:
        with self.session_factory() as db:
            return db.query(model).count()

    def _factory_qty(self) -> int:
        with self.session_factory() as db:
            return db.query(InventoryLevel).one().factory_qty

    def _create_note(self):
        return self.client.post(
            '/consignment/notes',
            json={
                'seller_id': self.seller_id,
                'origin': 'FACTORY',
                'lines': [{'reference': 'SUT-001', 'size': 'M', 'color': 'Black', 'quantity': 3, 'unit_price': '20.00'}],
            },
            headers=self.headers,
        )

    def test_failed_line_insert_leaves_no_header_and_no_stock_movement(self) -> None:
        def failing_flush(db, *, action):
            if action == 'save the note items':
                with storage_guard(action):
                    raise _disk_error('INSERT INTO consignment_line_items')
            storage_utils.flush(db, action=action)

        with patch('consignment_ledger.services.note_service.flush', side_effect=failing_flush):
            response = self._create_note()

        self.assertEqual(response.status_code, 503)
        self.assertIn('save the note items', response.json()['detail'])
        self.assertEqual(self._count(ConsignmentNote), 0)
        self.assertEqual(self._count(ConsignmentLineItem), 0)
        self.assertEqual(self._factory_qty(), 20)

        response = self._create_note()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['number'], 'C001')
        self.assertEqual(self._factory_qty(), 17)

    def test_failed_delete_keeps_header_lines_and_installments(self) -> None:
        note_id = self._create_note().json()['id']
        self.client.put(
            f'/consignment/notes/{note_id}/installments',
            json={'installments': [{'sequence': 1, 'amount': '60.00'}]},
            headers=self.headers,
        )
        self.client.patch(f'/consignment/notes/{note_id}', json={'status': 'CLOSED'}, headers=self.headers)
        self.client.post(f'/consignment/notes/{note_id}/archive', headers=self.headers)

        def failing_execute(session, statement, *args, **kwargs):
            if getattr(statement, 'is_delete', False) and statement.table is ConsignmentNote.__table__:
                raise _disk_error('DELETE FROM consignment_notes')
            return _real_execute(session, statement, *args, **kwargs)

        with patch.object(Session, 'execute', autospec=True, side_effect=failing_execute):
            response = self.client.delete(f'/consignment/notes/{note_id}?confirm_number=C001', headers=self.headers)

        self.assertEqual(response.status_code, 503)
        self.assertEqual(self._count(ConsignmentNote), 1)
        self.assertEqual(self._count(ConsignmentLineItem), 1)
        self.assertEqual(self._count(ConsignmentInstallment), 1)

        response = self.client.delete(f'/consignment/notes/{note_id}?confirm_number=C001', headers=self.headers)
        self.assertEqual(response.json(), {'deleted': 'C001'})
        self.assertEqual(self._count(ConsignmentInstallment), 0)


if __name__ == '__main__':
    unittest.main()
