"""Provider eligibility filtering and scoring for auto-assignment"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from ...config import DEFAULT_BOOKING_DURATION_MINUTES
from ...models import Provider

SERVICE_MATCH_SCORE = 30
ANY_PROVIDER_SCORE = 20
WORKLOAD_HEADROOM_SCORE = 20
FULL_CAPACITY_WORKLOAD = 100


@dataclass
class EligibilityRequest:
    """The parts of a booking that decide who may take it"""

    service_id: Optional[int] = None
    duration_minutes: Optional[int] = None
    scheduled_date: Optional[date] = None

    @property
    def has_service_filter(self) -> bool:
        return self.service_id is not None and str(self.service_id).strip() != ""


@dataclass
class EligibilityProvider:
    id: int
    name: str
    invitation_priority: int
    score: float
    eligible: bool
    reasons: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _format_workload(workload: float) -> str:
    return f"{int(workload)}" if float(workload).is_integer() else f"{workload:g}"


class EligibilityEvaluator:
    """
    Decides, per provider, whether they can take a booking and how well they fit.

    Gating: not opted out of auto-assignments, offers the service (when the
    booking names one), booking fits under the tenant's minutes cap, and the
    provider is below 100% workload. The score only ranks eligible providers.
    """

    def __init__(
        self,
        max_minutes_per_booking: Optional[int] = None,
        default_duration_minutes: int = DEFAULT_BOOKING_DURATION_MINUTES,
    ):
        self.max_minutes_per_booking = max_minutes_per_booking
        self.default_duration_minutes = default_duration_minutes

    def _duration(self, request: EligibilityRequest) -> int:
        if request.duration_minutes is None:
            return self.default_duration_minutes
        return int(request.duration_minutes)

    def evaluate(self, provider: Provider, request: EligibilityRequest) -> EligibilityProvider:
        prefs = provider.preferences
        opted_out = prefs is not None and prefs.auto_assignments is False

        has_service = request.has_service_filter
        offers_service = not has_service or any(
            ps.service_id == request.service_id for ps in (provider.services or [])
        )

        cap = self.max_minutes_per_booking
        over_max_minutes = cap is not None and cap > 0 and self._duration(request) > cap

        capacity = provider.capacity
        workload = float(capacity.current_workload or 0) if capacity is not None else 0.0
        at_full_capacity = capacity is not None and workload >= FULL_CAPACITY_WORKLOAD

        eligible = not opted_out and offers_service and not over_max_minutes and not at_full_capacity

        score = 0.0
        reasons: list[str] = []
        if opted_out:
            reasons.append("Does not accept auto-assignments")
        if has_service and not offers_service:
            reasons.append("Does not provide this service")
        if over_max_minutes:
            reasons.append("Booking duration exceeds max")
        if at_full_capacity:
            reasons.append("At full capacity")

        if eligible:
            if has_service:
                score += SERVICE_MATCH_SCORE
                reasons.append("Service match")
            else:
                score += ANY_PROVIDER_SCORE
                reasons.append("Any provider")
            if capacity is not None:
                score += max(0.0, WORKLOAD_HEADROOM_SCORE - workload)
                reasons.append(f"Workload: {_format_workload(workload)}%")

        return EligibilityProvider(
            id=provider.id,
            name=provider.display_name,
            invitation_priority=int(provider.invitation_priority or 0),
            score=score,
            eligible=eligible,
            reasons=reasons,
            created_at=provider.created_at,
        )

    def evaluate_all(
        self, providers: Iterable[Provider], request: EligibilityRequest
    ) -> list[EligibilityProvider]:
        return [self.evaluate(provider, request) for provider in providers]


def ranking_key(candidate) -> tuple:
    """Priority desc, then score desc, then oldest provider first"""
    created_at = candidate.created_at or datetime.min
    return (-int(candidate.invitation_priority or 0), -float(candidate.score or 0), created_at)


def rank_candidates(candidates: Iterable[EligibilityProvider]) -> list[EligibilityProvider]:
    return sorted(candidates, key=ranking_key)
