"""Candidate scoring between one bank transaction and one invoice or expense.

Scores are 0-100 integers built from fixed tiers:

- reference match (invoices only): the transaction reference and the invoice
  number contain one another -> reference score, amount and date ignored
- exact: amount delta below the absolute tolerance and a short date gap
- near: amount delta within a percentage of the candidate total and a wider gap
- otherwise 0

Expenses additionally get a small vendor bonus when the counterparty looks like
the expense vendor, but only on top of a tier that already fired.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from difflib import SequenceMatcher

from bankrec.models import BankTransaction, Expense, Invoice
from bankrec.services.matching_config import ReconciliationConfig


@dataclass(frozen=True)
class CandidateScore:
    score: int
    reason: str


NO_MATCH = CandidateScore(score=0, reason="No amount/date match")


def normalize_text(value: str) -> str:
    """Normalize text for similarity comparison."""
    cleaned = re.sub(r"[^a-z0-9]+", " ", value.lower()).strip()
    return re.sub(r"\s+", " ", cleaned)


def score_description(a: str | None, b: str | None) -> float:
    """Score text similarity (0-100) from character ratio and token overlap."""
    if not a or not b:
        return 0.0
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if not norm_a or not norm_b:
        return 0.0
    ratio = SequenceMatcher(None, norm_a, norm_b).ratio()
    tokens_a = set(norm_a.split())
    tokens_b = set(norm_b.split())
    token_score = len(tokens_a & tokens_b) / len(tokens_a | tokens_b) if tokens_a | tokens_b else 0
    return round(100 * (0.6 * ratio + 0.4 * token_score), 2)


def to_utc_date(value: date | datetime) -> date:
    """Truncate to a calendar date, converting aware datetimes to UTC first."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    return value


def days_between(a: date | datetime, b: date | datetime) -> int:
    return abs((to_utc_date(a) - to_utc_date(b)).days)


def reference_matches(reference: str | None, invoice_number: str | None) -> bool:
    """True when either value contains the other (case-insensitive).

    Both values must be non-empty; an empty string would otherwise be a
    substring of everything.
    """
    ref = (reference or "").strip().lower()
    number = (invoice_number or "").strip().lower()
    if not ref or not number:
        return False
    return number in ref or ref in number


def _score_amount_and_date(
    txn_amount: Decimal,
    txn_date: date | datetime,
    candidate_amount: Decimal,
    candidate_date: date | datetime,
    config: ReconciliationConfig,
) -> CandidateScore:
    delta = abs(candidate_amount - txn_amount)
    gap = days_between(txn_date, candidate_date)

    if delta < config.exact_amount_tolerance and gap <= config.exact_date_days:
        return CandidateScore(
            score=config.exact_score,
            reason=f"Amount within {config.exact_amount_tolerance} and {gap} day(s) apart",
        )
    if (
        candidate_amount > 0
        and delta <= candidate_amount * config.near_amount_percent
        and gap <= config.near_date_days
    ):
        return CandidateScore(
            score=config.near_score,
            reason=(
                f"Amount within {config.near_amount_percent * 100:.0f}% "
                f"and {gap} day(s) apart"
            ),
        )
    return NO_MATCH


def score_invoice(
    transaction: BankTransaction, invoice: Invoice, config: ReconciliationConfig
) -> CandidateScore:
    """Score a bank transaction against an invoice."""
    if reference_matches(transaction.reference, invoice.invoice_number):
        return CandidateScore(
            score=config.reference_score,
            reason=f"Reference matches invoice {invoice.invoice_number}",
        )
    return _score_amount_and_date(
        abs(transaction.amount),
        transaction.date,
        invoice.amount,
        invoice.issue_date,
        config,
    )


def score_expense(
    transaction: BankTransaction, expense: Expense, config: ReconciliationConfig
) -> CandidateScore:
    """Score a bank transaction against an expense."""
    base = _score_amount_and_date(
        abs(transaction.amount),
        transaction.date,
        expense.total_amount,
        expense.date,
        config,
    )
    if base.score == 0 or not expense.vendor_name:
        return base

    similarity = max(
        score_description(expense.vendor_name, transaction.counterparty_name),
        score_description(expense.vendor_name, transaction.description),
    )
    if similarity < config.vendor_similarity_min:
        return base
    return CandidateScore(
        score=min(100, base.score + config.vendor_bonus),
        reason=f"{base.reason}; vendor '{expense.vendor_name}' matches counterparty",
    )
