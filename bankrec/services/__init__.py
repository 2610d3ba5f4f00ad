"""Services package."""

from bankrec.services.auto_match import AutoMatchResult, run_auto_match
from bankrec.services.ingestion import (
    ParsedTransaction,
    UploadResult,
    get_import_job,
    import_parsed_transactions,
    mark_import_failed,
    upload_statement,
)
from bankrec.services.manual_match import MatchActionResult, ignore, link, unlink
from bankrec.services.matching_config import ReconciliationConfig, load_reconciliation_config
from bankrec.services.resolver import MatchOutcome, Resolution, resolve
from bankrec.services.scoring import CandidateScore, score_expense, score_invoice
from bankrec.services.storage import StorageError, StorageService

__all__ = [
    "AutoMatchResult",
    "CandidateScore",
    "MatchActionResult",
    "MatchOutcome",
    "ParsedTransaction",
    "ReconciliationConfig",
    "Resolution",
    "StorageError",
    "StorageService",
    "UploadResult",
    "get_import_job",
    "ignore",
    "import_parsed_transactions",
    "link",
    "load_reconciliation_config",
    "mark_import_failed",
    "resolve",
    "run_auto_match",
    "score_expense",
    "score_invoice",
    "unlink",
    "upload_statement",
]
