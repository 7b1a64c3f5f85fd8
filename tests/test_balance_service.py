from __future__ import annotations

import unittest
from decimal import Decimal
from types import SimpleNamespace

from consignment_ledger.services.balance_service import (
    compute_note_balance,
    count_note_items,
    line_payable_value,
    remaining_quantity,
)


def _line(shipped: int, returned: int, price: str) -> SimpleNamespace:
    return SimpleNamespace(quantity_shipped=shipped, quantity_returned=returned, unit_price=Decimal(price))


def _installment(amount: str, paid: str = '0', deleted: bool = False) -> SimpleNamespace:
    return SimpleNamespace(amount=Decimal(amount), paid_amount=Decimal(paid), deleted=deleted)


class BalanceServiceTests(unittest.TestCase):
    def test_totals_follow_shipped_and_returned_quantities(self) -> None:
        lines = [_line(10, 4, '20.00'), _line(3, 0, '15.50')]
        balance = compute_note_balance(lines, [])
        self.assertEqual(balance.original_total, Decimal('246.50'))
        self.assertEqual(balance.returned_value, Decimal('80.00'))
        self.assertEqual(balance.current_payable, Decimal('166.50'))
        self.assertEqual(balance.outstanding_balance, Decimal('166.50'))

    def test_deleted_installments_are_ignored(self) -> None:
        lines = [_line(5, 0, '10.00')]
        installments = [_installment('30.00', '30.00'), _installment('20.00', '20.00', deleted=True)]
        balance = compute_note_balance(lines, installments)
        self.assertEqual(balance.total_scheduled, Decimal('30.00'))
        self.assertEqual(balance.total_paid, Decimal('30.00'))
        self.assertEqual(balance.outstanding_balance, Decimal('20.00'))

    def test_overpayment_never_produces_negative_balance(self) -> None:
        lines = [_line(2, 1, '50.00')]
        balance = compute_note_balance(lines, [_installment('50.00', '80.00')])
        self.assertEqual(balance.current_payable, Decimal('50.00'))
        self.assertEqual(balance.outstanding_balance, Decimal('0.00'))
        self.assertEqual(balance.sold_value, Decimal('50.00'))

    def test_installments_without_deleted_attribute_count_as_active(self) -> None:
        rows = [SimpleNamespace(amount=Decimal('10'), paid_amount=Decimal('4'))]
        balance = compute_note_balance([_line(1, 0, '10')], rows)
        self.assertEqual(balance.total_paid, Decimal('4.00'))
        self.assertEqual(balance.outstanding_balance, Decimal('6.00'))
        self.assertEqual(balance.unscheduled_balance, Decimal('0.00'))

    def test_line_helpers(self) -> None:
        line = _line(10, 4, '20.00')
        self.assertEqual(remaining_quantity(line), 6)
        self.assertEqual(line_payable_value(line), Decimal('120.00'))

        counts = count_note_items([line, _line(3, 3, '1.00')])
        self.assertEqual((counts.shipped, counts.returned, counts.remaining), (13, 7, 6))

    def test_empty_note_has_zero_totals(self) -> None:
        balance = compute_note_balance([], [])
        self.assertEqual(balance.original_total, Decimal('0.00'))
        self.assertEqual(balance.outstanding_balance, Decimal('0.00'))


if __name__ == '__main__':
    unittest.main()
