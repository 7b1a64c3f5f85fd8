from __future__ import annotations

import unittest
from decimal import Decimal

from db_support import add_seller, add_variant, make_session_factory

from consignment_ledger.models import ConsignmentLineItem, StockOrigin
from consignment_ledger.services import note_service, return_service
from consignment_ledger.services.installment_service import InstallmentEditSession, mark_paid, reverse_payment
from consignment_ledger.services.note_service import NewLine


class ConsignmentFlowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.seller = add_seller(self.db)
        add_variant(self.db)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_note_return_installments_and_payment_reversal(self) -> None:
        note = note_service.create_note(
            self.db,
            seller_id=self.seller.id,
            origin=StockOrigin.FACTORY,
            due_date=None,
            notes=None,
            lines=[NewLine(reference='SUT-001', size='M', color='Black', quantity=10, unit_price=Decimal('20.00'))],
        )
        self.db.commit()

        balance = InstallmentEditSession.load(self.db, note_id=note.id).balance()
        self.assertEqual(balance.original_total, Decimal('200.00'))
        self.assertEqual(balance.outstanding_balance, Decimal('200.00'))

        line = self.db.query(ConsignmentLineItem).filter_by(note_id=note.id).one()
        return_service.record_return(self.db, line_id=line.id, returned_quantity=4)
        self.db.commit()

        session = InstallmentEditSession.load(self.db, note_id=note.id)
        balance = session.balance()
        self.assertEqual(balance.returned_value, Decimal('80.00'))
        self.assertEqual(balance.current_payable, Decimal('120.00'))
        self.assertEqual(balance.outstanding_balance, Decimal('120.00'))

        generated = session.generate_equal(2)
        self.assertEqual([draft.amount for draft in generated], [Decimal('60.00'), Decimal('60.00')])
        self.assertEqual(session.balance().total_scheduled, Decimal('120.00'))

        mark_paid(generated[0])
        self.assertEqual(session.balance().total_paid, Decimal('60.00'))
        self.assertEqual(session.balance().outstanding_balance, Decimal('60.00'))

        reverse_payment(generated[0])
        self.assertEqual(session.balance().total_paid, Decimal('0.00'))
        self.assertEqual(session.balance().outstanding_balance, Decimal('120.00'))

        saved = session.commit(self.db)
        self.db.commit()
        self.assertEqual(saved.balance().total_scheduled, Decimal('120.00'))
        self.assertEqual(saved.balance().outstanding_balance, Decimal('120.00'))


if __name__ == '__main__':
    unittest.main()
