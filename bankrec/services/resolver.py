"""Turn scored candidates for one bank transaction into a reconciliation decision."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from bankrec.models import BankTransaction, Expense, Invoice, MatchKind
from bankrec.services.matching_config import ReconciliationConfig
from bankrec.services.scoring import score_expense, score_invoice


class MatchOutcome(str, Enum):
    MATCHED = "matched"
    PARTIAL = "partial"
    AMBIGUOUS = "ambiguous"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class ScoredCandidate:
    kind: MatchKind
    target_id: UUID
    score: int
    reason: str


@dataclass
class Resolution:
    status: MatchOutcome
    confidence_score: int
    reason: str
    matched_invoice_id: UUID | None = None
    matched_expense_id: UUID | None = None
    candidates: list[ScoredCandidate] = field(default_factory=list)

    @property
    def matched_id(self) -> UUID | None:
        return self.matched_invoice_id or self.matched_expense_id

    @property
    def matched_kind(self) -> MatchKind | None:
        if self.matched_invoice_id is not None:
            return MatchKind.INVOICE
        if self.matched_expense_id is not None:
            return MatchKind.EXPENSE
        return None


def _sides_for(transaction: BankTransaction, config: ReconciliationConfig) -> tuple[bool, bool]:
    """Which candidate lists (invoices, expenses) a transaction is scored against."""
    if config.direction_policy == "any":
        return True, True
    if transaction.amount > 0:
        return True, False
    if transaction.amount < 0:
        return False, True
    return False, False


def rank_candidates(
    transaction: BankTransaction,
    invoices: Iterable[Invoice],
    expenses: Iterable[Expense],
    config: ReconciliationConfig,
) -> list[ScoredCandidate]:
    """Score every eligible candidate and sort by score, highest first.

    The sort is stable: equal scores keep invoice-then-expense input order.
    """
    use_invoices, use_expenses = _sides_for(transaction, config)
    scored: list[ScoredCandidate] = []

    if use_invoices:
        for invoice in invoices:
            result = score_invoice(transaction, invoice, config)
            scored.append(
                ScoredCandidate(MatchKind.INVOICE, invoice.id, result.score, result.reason)
            )
    if use_expenses:
        for expense in expenses:
            result = score_expense(transaction, expense, config)
            scored.append(
                ScoredCandidate(MatchKind.EXPENSE, expense.id, result.score, result.reason)
            )

    return sorted(scored, key=lambda c: c.score, reverse=True)


def resolve(
    transaction: BankTransaction,
    invoices: Iterable[Invoice],
    expenses: Iterable[Expense],
    config: ReconciliationConfig,
) -> Resolution:
    """Decide matched / partial / ambiguous / unmatched for one transaction.

    A tie between the two best non-zero scores is always ambiguous and never
    assigns a target, whatever the tied score is.
    """
    ranked = rank_candidates(transaction, invoices, expenses, config)

    if not ranked or ranked[0].score == 0:
        return Resolution(
            status=MatchOutcome.UNMATCHED,
            confidence_score=0,
            reason="No candidate scored above zero",
            candidates=ranked,
        )

    top = ranked[0]
    if len(ranked) > 1 and ranked[1].score == top.score:
        tied = sum(1 for c in ranked if c.score == top.score)
        return Resolution(
            status=MatchOutcome.AMBIGUOUS,
            confidence_score=top.score,
            reason=f"{tied} candidates tied at score {top.score}",
            candidates=ranked,
        )

    if top.score >= config.matched_threshold:
        outcome = MatchOutcome.MATCHED
    elif top.score >= config.candidate_threshold:
        outcome = MatchOutcome.PARTIAL
    else:
        return Resolution(
            status=MatchOutcome.UNMATCHED,
            confidence_score=0,
            reason=f"Best score {top.score} below candidate threshold",
            candidates=ranked,
        )

    resolution = Resolution(
        status=outcome,
        confidence_score=top.score,
        reason=top.reason,
        candidates=ranked,
    )
    if top.kind == MatchKind.INVOICE:
        resolution.matched_invoice_id = top.target_id
    else:
        resolution.matched_expense_id = top.target_id
    return resolution
