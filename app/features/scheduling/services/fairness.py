"""
Fairness and VIP priority scoring.

Pure helpers layered on top of solver output:

    final = round((time_preference + constraint) * fairness * vip)

A participant's preference rate is ``sessions_preferred / sessions_participated``.
The target's deviation from the group average rate sets the fairness
multiplier: above average (won too often) scores lower, below average
scores higher, bounded to [0.5, 1.5]. VIP weight is the highest
``priority_weight`` among matching policies, or 1.0.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime

from app.features.scheduling.domain.models import (
    SchedulingHistoryEntry,
    SchedulingOutcome,
    StoredCandidate,
    VipPolicy,
    candidate_sort_key,
)
from app.features.scheduling.solver.greedy import round_half_up

MIN_FAIRNESS_ADJUSTMENT = 0.5
MAX_FAIRNESS_ADJUSTMENT = 1.5
NEUTRAL = 1.0


@dataclass(frozen=True, slots=True)
class MultiFactorInput:
    time_preference_score: float
    constraint_score: float
    fairness_adjustment: float
    vip_weight: float


@dataclass(frozen=True, slots=True)
class MultiFactorResult:
    final_score: int
    components: MultiFactorInput


def compute_fairness_score(
    history: Sequence[SchedulingHistoryEntry], target_participant: str | None = None
) -> tuple[float, str | None]:
    """
    Fairness multiplier for one participant against the group.

    Args:
        history: Ledger rows for everyone in the group
        target_participant: Hash of the participant to adjust for

    Returns:
        (adjustment, explanation); (1.0, None) whenever there is nothing
        to compare against or the participant sits at the group average
    """
    # a single ledger row has no group to compare against
    if len(history) < 2 or not target_participant:
        return NEUTRAL, None

    rates: dict[str, float] = {}
    total_rate = 0.0
    valid_count = 0

    for entry in history:
        if entry.sessions_participated == 0:
            rates.setdefault(entry.participant_hash, 0.0)
            continue
        rate = entry.sessions_preferred / entry.sessions_participated
        rates.setdefault(entry.participant_hash, rate)
        total_rate += rate
        valid_count += 1

    if valid_count == 0:
        return NEUTRAL, None

    if target_participant not in rates:
        return NEUTRAL, None

    average_rate = total_rate / valid_count
    deviation = rates[target_participant] - average_rate

    adjustment = max(MIN_FAIRNESS_ADJUSTMENT, min(MAX_FAIRNESS_ADJUSTMENT, NEUTRAL - deviation))
    rounded = round_half_up(adjustment * 100) / 100

    if rounded == NEUTRAL:
        return NEUTRAL, None

    direction = "advantaged" if rounded < NEUTRAL else "disadvantaged"
    return rounded, f"fairness: {target_participant} {direction} ({rounded:g}x)"


def apply_vip_weight(
    policies: Sequence[VipPolicy], participant_hashes: Iterable[str]
) -> tuple[float, str | None]:
    """Highest matching VIP weight and its explanation, or (1.0, None)."""
    participants = set(participant_hashes)
    if not policies or not participants:
        return NEUTRAL, None

    best: VipPolicy | None = None
    for policy in policies:
        if policy.participant_hash not in participants:
            continue
        if best is None or policy.priority_weight > best.priority_weight:
            best = policy

    if best is None:
        return NEUTRAL, None

    return (
        best.priority_weight,
        f"VIP priority: {best.display_name} ({best.priority_weight:g}x)",
    )


def compute_multi_factor_score(factors: MultiFactorInput) -> MultiFactorResult:
    # constraint_score is kept separate for callers but is normally 0:
    # the solver already folds constraint deltas into its own score
    base = factors.time_preference_score + factors.constraint_score
    final = round_half_up(base * factors.fairness_adjustment * factors.vip_weight)
    return MultiFactorResult(final_score=final, components=factors)


def build_explanation(
    base_explanation: str,
    fairness_adjustment: float = NEUTRAL,
    fairness_explanation: str | None = None,
    vip_weight: float = NEUTRAL,
    vip_explanation: str | None = None,
) -> str:
    """Join the solver explanation with fairness/VIP notes that actually moved the score."""
    parts = []
    if base_explanation:
        parts.append(base_explanation)
    if fairness_adjustment != NEUTRAL and fairness_explanation:
        parts.append(fairness_explanation)
    if vip_weight > NEUTRAL and vip_explanation:
        parts.append(vip_explanation)
    return ", ".join(parts)


def record_scheduling_outcome(
    session_id: str,
    participant_hashes: Iterable[str],
    preferred_participant: str | None,
    scheduled_ts: datetime,
) -> list[SchedulingOutcome]:
    """One ledger entry per participant; only ``preferred_participant`` got their way."""
    return [
        SchedulingOutcome(
            session_id=session_id,
            participant_hash=participant_hash,
            got_preferred=participant_hash == preferred_participant,
            scheduled_ts=scheduled_ts,
        )
        for participant_hash in participant_hashes
    ]


def rescore_candidates(
    candidates: Sequence[StoredCandidate],
    history: Sequence[SchedulingHistoryEntry],
    policies: Sequence[VipPolicy],
    participant_hashes: Sequence[str],
) -> list[StoredCandidate]:
    """
    Apply fairness and VIP adjustments to solver candidates and re-sort.

    Scores pass through unchanged when there are no participants, or
    neither history nor VIP data. The organizer (first participant) is the
    fairness target.
    """
    if not participant_hashes or not (history or policies):
        return sorted(candidates, key=candidate_sort_key)

    organizer = participant_hashes[0]
    fairness, fairness_explanation = compute_fairness_score(history, organizer)
    vip_weight, vip_explanation = apply_vip_weight(policies, participant_hashes)

    rescored = []
    for candidate in candidates:
        result = compute_multi_factor_score(
            MultiFactorInput(
                time_preference_score=candidate.score,
                constraint_score=0,
                fairness_adjustment=fairness,
                vip_weight=vip_weight,
            )
        )
        rescored.append(
            replace(
                candidate,
                score=result.final_score,
                explanation=build_explanation(
                    candidate.explanation,
                    fairness,
                    fairness_explanation,
                    vip_weight,
                    vip_explanation,
                ),
            )
        )

    rescored.sort(key=candidate_sort_key)
    return rescored
