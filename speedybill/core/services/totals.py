from __future__ import annotations
from typing import NamedTuple

from speedybill.core.models.invoice import Invoice, LineItem

# Valeurs dérivées : recalculées à chaque lecture, jamais stockées.
# Le clamp défensif (taxe / remise négatives) se fait ici et nulle part ailleurs.


class Totals(NamedTuple):
    subtotal: float
    tax_amount: float
    discount_amount: float
    total: float


def line_total(item: LineItem) -> float:
    return item.qty * item.unit_price


def subtotal(invoice: Invoice) -> float:
    return sum((line_total(it) for it in invoice.items), 0.0)


def tax_amount(invoice: Invoice) -> float:
    return subtotal(invoice) * (max(invoice.settings.tax_rate, 0.0) / 100)


def discount_amount(invoice: Invoice) -> float:
    # remise forfaitaire, pas un pourcentage
    return max(invoice.settings.discount, 0.0)


def total(invoice: Invoice) -> float:
    # peut être négatif si la remise dépasse sous-total + taxe
    return subtotal(invoice) + tax_amount(invoice) - discount_amount(invoice)


def compute_totals(invoice: Invoice) -> Totals:
    sub = subtotal(invoice)
    tax = sub * (max(invoice.settings.tax_rate, 0.0) / 100)
    disc = discount_amount(invoice)
    return Totals(subtotal=sub, tax_amount=tax, discount_amount=disc, total=sub + tax - disc)
