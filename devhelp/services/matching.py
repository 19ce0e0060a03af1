# devhelp/services/matching.py
"""
Advisory scoring: how urgent a help request is, and how well a developer
fits it. Plain weighted sums over static profile and request fields; the
results are shown to users and stored as ``match_score`` but never gate a
workflow step.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

# Score thresholds (0-100 scale)
EXCELLENT = 80
GOOD = 60
FAIR = 40
POOR = 20

URGENCY_POINTS = {"critical": 40, "high": 30, "medium": 20}
BUDGET_POINTS = {"$500+": 35, "$200 - $500": 25, "$100 - $200": 15, "$50 - $100": 10}

WEIGHTS = {"skills": 0.5, "availability": 0.3, "rating": 0.2}


@dataclass
class TicketPriority:
    score: int
    level: str  # critical|high|medium|low


@dataclass
class DeveloperMatch:
    developer_id: str
    value: int                    # 0-100
    skill_match_percent: int
    availability_score: int
    rating_score: int
    matching_skills: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)

    @property
    def score(self) -> float:
        """Match score in [0, 1], the form stored on applications."""
        return round(min(max(self.value, 0), 100) / 100.0, 2)


def calculate_ticket_priority(request) -> TicketPriority:
    points = URGENCY_POINTS.get(getattr(request, "urgency", None), 10)

    duration = getattr(request, "estimated_duration", None) or 0
    if duration >= 120:
        points += 25
    elif duration >= 60:
        points += 20
    elif duration >= 30:
        points += 15
    else:
        points += 10

    points += BUDGET_POINTS.get(getattr(request, "budget_range", None), 5)

    if points >= 85:
        level = "critical"
    elif points >= 65:
        level = "high"
    elif points >= 45:
        level = "medium"
    else:
        level = "low"
    return TicketPriority(score=points, level=level)


def _skill_match(skills: Iterable[str], areas: Iterable[str]):
    dev = [s.lower() for s in (skills or []) if s]
    need = [a.lower() for a in (areas or []) if a]
    if not dev or not need:
        return 0, []

    def overlaps(a, b):
        return a in b or b in a

    matching = [s for s in dev if any(overlaps(s, a) for a in need)]
    covered = [a for a in need if any(overlaps(s, a) for s in dev)]
    percent = min(100, round(len(covered) / len(need) * 100))
    return percent, matching


def _availability_score(profile) -> int:
    if not getattr(profile, "availability", False):
        return 0
    return 100 if getattr(profile, "online", False) else 70


def _rating_score(profile) -> int:
    rating = getattr(profile, "rating", None)
    if not rating:
        return 50
    return min(100, round(rating * 20))


def match_developer_to_request(developer, request) -> DeveloperMatch:
    """``developer`` is a User; its developer_profile supplies skills and availability."""
    profile = getattr(developer, "developer_profile", None)
    skills = getattr(profile, "skills", None) or []

    skill_pct, matching = _skill_match(skills, getattr(request, "technical_area", None))
    availability = _availability_score(profile)
    rating = _rating_score(profile)

    value = round(
        skill_pct * WEIGHTS["skills"]
        + availability * WEIGHTS["availability"]
        + rating * WEIGHTS["rating"]
    )

    reasons = []
    if skill_pct >= 75:
        reasons.append(f"Strong skills match ({skill_pct}%)")
    elif skill_pct >= 50:
        reasons.append(f"Good skills match ({skill_pct}%)")
    elif skill_pct > 0:
        reasons.append(f"Partial skills match ({skill_pct}%)")
    else:
        reasons.append("No direct skills match")
    if matching:
        reasons.append("Matching skills: " + ", ".join(matching))
    if getattr(profile, "online", False) and availability:
        reasons.append("Developer is currently online")
    elif availability:
        reasons.append("Developer is generally available")
    rating_val = getattr(profile, "rating", None) or 0
    if rating_val >= 4.5:
        reasons.append(f"Highly rated ({rating_val})")
    elif rating_val >= 4.0:
        reasons.append(f"Well rated ({rating_val})")

    return DeveloperMatch(
        developer_id=developer.id,
        value=value,
        skill_match_percent=skill_pct,
        availability_score=availability,
        rating_score=rating,
        matching_skills=matching,
        reasons=reasons,
    )


def rank_developers(request, developers, expand: bool = False) -> List[DeveloperMatch]:
    """Best matches first; below-FAIR matches dropped unless ``expand`` or nothing else qualifies."""
    matches = [match_developer_to_request(d, request) for d in developers]
    matches.sort(key=lambda m: m.value, reverse=True)
    if expand:
        return matches
    good = [m for m in matches if m.value >= FAIR]
    return good or matches
