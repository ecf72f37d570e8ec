"""
Scoring: turns verified claims into summary counts and an overall 0-100 score.
"""

from factchecker.core.constants import ClaimStatus, CLAIM_STATUS_CREDIT
from factchecker.core.models import Claim


def summarize_claims(claims: list[Claim]) -> dict:
    """Count claims per verdict."""
    statuses = [c.status for c in claims]
    return {
        'totalClaims': len(statuses),
        'trueClaims': statuses.count(ClaimStatus.TRUE),
        'falseClaims': statuses.count(ClaimStatus.FALSE),
        'partiallyTrueClaims': statuses.count(ClaimStatus.PARTIALLY_TRUE),
        'unverifiableClaims': statuses.count(ClaimStatus.UNVERIFIABLE),
    }


def compute_overall_score(claims: list[Claim]) -> int:
    """
    Weighted credit per claim: true 100, partially true 50, unverifiable 50,
    false 0. The mean is rounded half up. No claims scores 100.
    """
    if not claims:
        return 100

    weighted_sum = sum(CLAIM_STATUS_CREDIT.get(c.status, 50) for c in claims)
    # half up: round(62.5) would give 62
    return int(weighted_sum / len(claims) + 0.5)
