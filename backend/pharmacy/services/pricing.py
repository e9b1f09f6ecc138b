# Overview: Pure sale pricing: subtotal, tax and total in cents.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class PricedLine:
    unit_price_cents: int
    quantity: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """subtotal * rate, rounded to the nearest cent (half-up)."""
    return (subtotal_cents * tax_rate_bps + 5_000) // 10_000


def compute_totals(lines: Iterable[PricedLine], discount_cents: int, tax_rate_bps: int) -> SaleTotals:
    """
    subtotal = sum(line totals); tax = subtotal * rate;
    total = subtotal + tax - discount.

    The discount is applied as given. A discount larger than subtotal + tax
    produces a negative total; callers that want to forbid that check
    SaleTotals.total_cents themselves.
    """
    subtotal = sum(line.line_total_cents for line in lines)
    tax = compute_tax_cents(subtotal, tax_rate_bps)
    return SaleTotals(
        subtotal_cents=subtotal,
        tax_cents=tax,
        discount_cents=discount_cents,
        total_cents=subtotal + tax - discount_cents,
    )
