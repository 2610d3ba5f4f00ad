"""Reconciliation scoring configuration.

Resolution order: built-in defaults <- optional YAML file
(``scoring.thresholds`` / ``scoring.tolerances`` / ``scoring.scores``)
<- application settings the deployment explicitly set (environment or .env).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path

import yaml

from bankrec.config import settings
from bankrec.logger import get_logger

logger = get_logger(__name__)

DIRECTION_POLICIES = ("sign", "any")


@dataclass(frozen=True)
class ReconciliationConfig:
    """Runtime configuration for candidate scoring and auto-match gating."""

    auto_match_threshold: int
    matched_threshold: int
    candidate_threshold: int
    reference_score: int
    exact_score: int
    near_score: int
    exact_amount_tolerance: Decimal
    exact_date_days: int
    near_amount_percent: Decimal
    near_date_days: int
    vendor_similarity_min: int
    vendor_bonus: int
    direction_policy: str
    mismatch_epsilon: Decimal

    def validate(self) -> None:
        for name in ("auto_match_threshold", "matched_threshold", "candidate_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within 0-100, got {value}")
        if self.auto_match_threshold < self.matched_threshold:
            raise ValueError(
                "auto_match_threshold must not be below matched_threshold "
                f"({self.auto_match_threshold} < {self.matched_threshold})"
            )
        if self.candidate_threshold > self.matched_threshold:
            raise ValueError(
                "candidate_threshold must not exceed matched_threshold "
                f"({self.candidate_threshold} > {self.matched_threshold})"
            )
        if self.direction_policy not in DIRECTION_POLICIES:
            raise ValueError(
                f"direction_policy must be one of {DIRECTION_POLICIES}, got {self.direction_policy!r}"
            )


DEFAULT_CONFIG = ReconciliationConfig(
    auto_match_threshold=85,
    matched_threshold=85,
    candidate_threshold=70,
    reference_score=100,
    exact_score=85,
    near_score=70,
    exact_amount_tolerance=Decimal("1.00"),
    exact_date_days=3,
    near_amount_percent=Decimal("0.05"),
    near_date_days=5,
    vendor_similarity_min=80,
    vendor_bonus=5,
    direction_policy="sign",
    mismatch_epsilon=Decimal("0.01"),
)

_config_cache: ReconciliationConfig | None = None


def _config_path() -> Path:
    if settings.reconciliation_config_path:
        return Path(settings.reconciliation_config_path)
    return Path(__file__).resolve().parents[2] / "config" / "reconciliation.yaml"


SETTINGS_FIELDS = {
    "reconciliation_auto_match_threshold": "auto_match_threshold",
    "reconciliation_matched_threshold": "matched_threshold",
    "reconciliation_candidate_threshold": "candidate_threshold",
    "reconciliation_direction_policy": "direction_policy",
}


def _apply_settings(config: ReconciliationConfig) -> ReconciliationConfig:
    # Settings left at their defaults must not mask the YAML file.
    overrides = {
        target: getattr(settings, field)
        for field, target in SETTINGS_FIELDS.items()
        if field in settings.model_fields_set
    }
    config = replace(config, **overrides)
    # A raised matched threshold carries the auto-match gate along unless both were set.
    if (
        "matched_threshold" in overrides
        and "auto_match_threshold" not in overrides
        and config.auto_match_threshold < config.matched_threshold
    ):
        config = replace(config, auto_match_threshold=config.matched_threshold)
    return config


def _apply_yaml(config: ReconciliationConfig, raw: dict) -> ReconciliationConfig:
    scoring = raw.get("scoring") or {}
    thresholds = scoring.get("thresholds") or {}
    tolerances = scoring.get("tolerances") or {}
    scores = scoring.get("scores") or {}

    return replace(
        config,
        auto_match_threshold=int(thresholds.get("auto_match", config.auto_match_threshold)),
        matched_threshold=int(thresholds.get("matched", config.matched_threshold)),
        candidate_threshold=int(thresholds.get("candidate", config.candidate_threshold)),
        reference_score=int(scores.get("reference", config.reference_score)),
        exact_score=int(scores.get("exact", config.exact_score)),
        near_score=int(scores.get("near", config.near_score)),
        vendor_bonus=int(scores.get("vendor_bonus", config.vendor_bonus)),
        exact_amount_tolerance=Decimal(
            str(tolerances.get("exact_amount", config.exact_amount_tolerance))
        ),
        exact_date_days=int(tolerances.get("exact_date_days", config.exact_date_days)),
        near_amount_percent=Decimal(
            str(tolerances.get("near_amount_percent", config.near_amount_percent))
        ),
        near_date_days=int(tolerances.get("near_date_days", config.near_date_days)),
        vendor_similarity_min=int(
            tolerances.get("vendor_similarity_min", config.vendor_similarity_min)
        ),
        mismatch_epsilon=Decimal(str(tolerances.get("mismatch_epsilon", config.mismatch_epsilon))),
        direction_policy=str(scoring.get("direction_policy", config.direction_policy)),
    )


def load_reconciliation_config(force_reload: bool = False) -> ReconciliationConfig:
    """Load reconciliation configuration, caching the result.

    A malformed YAML file is logged and ignored; an invalid final combination
    of thresholds raises ``ValueError``.
    """
    global _config_cache
    if _config_cache is not None and not force_reload:
        return _config_cache

    config = DEFAULT_CONFIG
    config_path = _config_path()

    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
            if not isinstance(raw, dict):
                raise ValueError("top-level YAML document must be a mapping")
            config = _apply_yaml(config, raw)
        except (OSError, yaml.YAMLError, ValueError, TypeError, AttributeError, InvalidOperation) as e:
            logger.warning(
                "Failed to load reconciliation config - using defaults",
                config_path=str(config_path),
                error=str(e),
                error_type=type(e).__name__,
            )

    config = _apply_settings(config)
    config.validate()
    _config_cache = config
    return config
