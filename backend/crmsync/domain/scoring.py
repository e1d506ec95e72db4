from __future__ import annotations

import re
from dataclasses import dataclass, field

from .profile import CompanyProfile

_TEMP_STAFF = re.compile(r"temp|staff|agency", re.IGNORECASE)


@dataclass(frozen=True)
class LeadScore:
    score: int
    signals: tuple[str, ...] = field(default_factory=tuple)


def compute_lead_score(profile: CompanyProfile) -> LeadScore:
    """
    Additive heuristic over the extracted profile, clamped to [0, 100].
    Recomputed from scratch on every run.
    """
    score = 0
    signals: list[str] = []

    if len(profile.hiring_trends) >= 2:
        score += 20
        signals.append("High hiring velocity")

    org = profile.inferred_org_structure
    if org.warehouse:
        score += 10
        signals.append("Warehouse ops")
    if org.ops:
        score += 5
        signals.append("Operations leadership")

    if profile.red_flags:
        score += 15
        signals.append("Red flags present")

    if any(_TEMP_STAFF.search(tag) for tag in profile.suggested_tags):
        score += 25
        signals.append("Competitors using temp staff")

    return LeadScore(score=max(0, min(100, score)), signals=tuple(signals))
