"""Risk scorer - weighted session risk assessment."""

from trustgate.risk.recommendations import (
    FACTOR_RECOMMENDATIONS,
    LEVEL_RECOMMENDATIONS,
    generate_recommendations,
)
from trustgate.risk.scorer import (
    FACTOR_RULES,
    FACTOR_WEIGHTS,
    RiskContext,
    RiskRequest,
    RiskScorer,
    risk_level_for,
    sanitize_history,
    score_risk,
    summarize_risk_history,
)
from trustgate.risk.vpn import IpApiProxyDetector, PatternVpnDetector, VpnDetector

__all__ = [
    "FACTOR_RECOMMENDATIONS",
    "LEVEL_RECOMMENDATIONS",
    "generate_recommendations",
    "FACTOR_RULES",
    "FACTOR_WEIGHTS",
    "RiskContext",
    "RiskRequest",
    "RiskScorer",
    "risk_level_for",
    "sanitize_history",
    "score_risk",
    "summarize_risk_history",
    "IpApiProxyDetector",
    "PatternVpnDetector",
    "VpnDetector",
]
