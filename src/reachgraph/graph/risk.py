"""Risk scoring for impact queries."""

import logging

from reachgraph.config import RiskConfig
from reachgraph.schemas import RiskAssessment, RiskLevel

logger = logging.getLogger(__name__)


def risk_level(score: float, config: RiskConfig) -> RiskLevel:
    """Bucket a score with the configured thresholds (inclusive lower bounds)."""
    if score >= config.high_threshold:
        return RiskLevel.HIGH
    if score >= config.medium_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def assess_risk(
    entry_point_count: int,
    sensitive_path_count: int,
    coverage: float | None,
    config: RiskConfig,
) -> RiskAssessment:
    """Score how risky it is to change a target.

    The score is a weighted mean of three factors in [0, 1], scaled to
    0..100: entry-point exposure and sensitive data reach, each saturating at
    its configured count, and the share of the target left untested.

    Args:
        entry_point_count: Entry points that can reach the target.
        sensitive_path_count: Sensitive data nodes the target can reach.
        coverage: Test coverage ratio of the target; None uses the
            configured default. Values outside [0, 1] are clamped.
        config: Weights, saturation counts and thresholds.

    Returns:
        RiskAssessment with score, level and the individual factors.
    """
    if coverage is None:
        coverage = config.default_coverage
    elif not 0.0 <= coverage <= 1.0:
        clamped = min(1.0, max(0.0, coverage))
        logger.warning(f"Coverage ratio {coverage} outside [0, 1], using {clamped}")
        coverage = clamped

    exposure = min(1.0, entry_point_count / config.entry_point_saturation)
    data_reach = min(1.0, sensitive_path_count / config.sensitive_path_saturation)
    untested = 1.0 - coverage

    weights = config.entry_point_weight + config.sensitive_path_weight + config.coverage_weight
    weighted = (
        config.entry_point_weight * exposure
        + config.sensitive_path_weight * data_reach
        + config.coverage_weight * untested
    )
    score = round(min(100.0, max(0.0, 100.0 * weighted / weights)), 2)

    return RiskAssessment(
        score=score,
        level=risk_level(score, config),
        factors={
            "entry_point_exposure": round(exposure, 4),
            "sensitive_data_reach": round(data_reach, 4),
            "untested": round(untested, 4),
            "coverage": round(coverage, 4),
        },
    )
