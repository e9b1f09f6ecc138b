# Overview: Human-readable document numbers (receipts, orders, prescriptions, customers).

"""
Numbers are a prefix, a date stamp and a random zero-padded suffix:

    RCP-20261016-0042   receipt         (day, 4 digits)
    PO-20261016-007     purchase order  (day, 3 digits)
    RX-20261016-1234    prescription    (day, 4 digits)
    CUST-202610-0815    customer        (month, 4 digits)

Nothing here queries the database. Uniqueness is enforced by a unique
constraint at insert time and callers regenerate on collision.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime

from ..errors import DomainError
from pharmacy.time_utils import utcnow


@dataclass(frozen=True)
class SequenceFormat:
    prefix: str
    date_format: str
    width: int


RECEIPT = SequenceFormat(prefix="RCP", date_format="%Y%m%d", width=4)
PURCHASE_ORDER = SequenceFormat(prefix="PO", date_format="%Y%m%d", width=3)
PRESCRIPTION = SequenceFormat(prefix="RX", date_format="%Y%m%d", width=4)
CUSTOMER = SequenceFormat(prefix="CUST", date_format="%Y%m", width=4)

_rng = random.SystemRandom()


class DuplicateIdentifierError(DomainError):
    """A freshly minted number collided and retries ran out."""
    status_code = 500
    code = "DUPLICATE_IDENTIFIER"


def format_number(fmt: SequenceFormat, *, now: datetime | None = None, rng=None) -> str:
    now = now or utcnow()
    rng = rng or _rng
    suffix = rng.randrange(10 ** fmt.width)
    return f"{fmt.prefix}-{now.strftime(fmt.date_format)}-{suffix:0{fmt.width}d}"


def next_receipt_number(*, now: datetime | None = None, rng=None) -> str:
    return format_number(RECEIPT, now=now, rng=rng)


def next_order_number(*, now: datetime | None = None, rng=None) -> str:
    return format_number(PURCHASE_ORDER, now=now, rng=rng)


def next_prescription_number(*, now: datetime | None = None, rng=None) -> str:
    return format_number(PRESCRIPTION, now=now, rng=rng)


def next_customer_number(*, now: datetime | None = None, rng=None) -> str:
    return format_number(CUSTOMER, now=now, rng=rng)
