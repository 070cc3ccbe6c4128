"""Table-driven recommendations.

Adding a factor kind only needs a new FACTOR_RECOMMENDATIONS entry;
level logic is untouched.
"""

from typing import Dict, Iterable, List, Tuple

from trustgate.data.schemas.risk import FactorKind, RiskLevel


LEVEL_RECOMMENDATIONS: Dict[RiskLevel, Tuple[str, ...]] = {
    RiskLevel.CRITICAL: (
        "Require immediate password change",
        "Enable two-factor authentication",
        "Review all active sessions",
    ),
    RiskLevel.HIGH: (
        "Require immediate password change",
        "Enable two-factor authentication",
        "Review all active sessions",
    ),
    RiskLevel.MEDIUM: (
        "Monitor session activity closely",
        "Log detailed audit trail",
    ),
    RiskLevel.LOW: (),
}

# Emitted in table order when the factor fired
FACTOR_RECOMMENDATIONS: Dict[FactorKind, Tuple[str, ...]] = {
    FactorKind.IMPOSSIBLE_TRAVEL: (
        "Verify this login was legitimate",
        "Consider blocking logins from unusual locations",
    ),
    FactorKind.FAILED_ATTEMPTS: (
        "Check for credential stuffing attempts",
        "Consider implementing CAPTCHA",
    ),
    FactorKind.VPN_PROXY: (
        "Verify user identity through additional means",
        "Consider restricting VPN access",
    ),
    FactorKind.NEW_DEVICE: (
        "Send email verification for new device",
        "Require device approval",
    ),
}


def generate_recommendations(fired_kinds: Iterable[str], risk_level: RiskLevel) -> List[str]:
    fired = set(fired_kinds)
    recommendations: List[str] = list(LEVEL_RECOMMENDATIONS.get(risk_level, ()))
    for kind, texts in FACTOR_RECOMMENDATIONS.items():
        if kind.value in fired:
            recommendations.extend(texts)

    # Preserve order, drop repeats
    return list(dict.fromkeys(recommendations))
