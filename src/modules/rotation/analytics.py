"""Fairness and completion metrics for a home's cycles.

Key Concepts:
- Completion percentage: share of a cycle's live assignments that are completed.
  Cancelled and reassigned rows are superseded by a newer pending row and are
  left out of the window.
- Rotation percentage: load equity between members. 100 when every member that
  holds work in the window holds the same number of assignments, falling as the
  gap between the most and least loaded member widens.
- Consecutive cycles: how many cycles in a row, counting back from the current
  one, met the home's completion goal.
"""

import logging
import math
from collections import Counter
from collections.abc import Iterable
from datetime import datetime

from src.core import db_client
from src.core.config import Constants, settings
from src.core.logging import span
from src.domain.assignment import Assignment, AssignmentStatus
from src.domain.home import Home
from src.models.service_models import HomeMetrics, ZoneStatus
from src.modules.rotation import homes
from src.modules.rotation.cycles import CycleWindow, cycle_window
from src.modules.rotation.metrics_cache import get_cached_metrics, store_metrics


logger = logging.getLogger(__name__)

SUPERSEDED_STATUSES = frozenset({AssignmentStatus.SKIPPED_CANCELLED, AssignmentStatus.SKIPPED_REASSIGNED})


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_completion_percentage(completed: int, total: int) -> int:
    """Completed share of total as a whole percentage; 0 for an empty window."""
    if total <= 0:
        return 0
    return round_half_up(completed / total * 100)


def calculate_rotation_percentage(counts: Iterable[int]) -> int:
    """Equity of assignment counts per member, clamped to [0, 100].

    Computed as 100 - (max - min) / max * 100. No members or no work at all
    counts as perfectly fair.
    """
    values = list(counts)
    if not values:
        return 100
    highest = max(values)
    if highest <= 0:
        return 100
    spread = (highest - min(values)) / highest * 100
    return max(0, min(100, 100 - round_half_up(spread)))


async def list_cycle_assignments(*, home_id: str, window: CycleWindow) -> list[Assignment]:
    """Assignments handed out inside the window, superseded rows excluded."""
    records = await db_client.list_records(
        collection="task_assignments",
        filter_query=(
            f'home_id = "{db_client.sanitize_param(home_id)}" '
            f'&& assigned_date >= "{window.first_day}" && assigned_date <= "{window.last_day}"'
        ),
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )
    assignments = [Assignment(**record) for record in records]
    return [a for a in assignments if a.status not in SUPERSEDED_STATUSES]


def _goal_for(home: Home) -> int:
    return home.goal_percentage or settings.default_goal_percentage


async def calculate_consecutive_cycles(*, home: Home, window: CycleWindow) -> int:
    """Count cycles meeting the goal, walking back from `window`.

    Stops at the first cycle without assignments, the first cycle below the
    goal, or the per-policy lookback limit.
    """
    goal = _goal_for(home)
    lookback = Constants.CONSECUTIVE_CYCLE_LOOKBACK[home.rotation_policy.value]

    consecutive = 0
    current = window
    for _ in range(lookback):
        assignments = await list_cycle_assignments(home_id=home.id, window=current)
        if not assignments:
            break
        completed = sum(1 for a in assignments if a.status == AssignmentStatus.COMPLETED)
        if calculate_completion_percentage(completed, len(assignments)) < goal:
            break
        consecutive += 1
        current = current.previous()

    return consecutive


async def get_home_metrics(*, home_id: str, reference: datetime | None = None) -> HomeMetrics:
    """Return completion, equity and streak figures for the cycle containing `reference`.

    Results for the current cycle are cached per home; an explicit reference
    date always recomputes.
    """
    if reference is None:
        cached = await get_cached_metrics(home_id)
        if cached is not None:
            logger.debug("Returning cached metrics for home %s", home_id)
            return cached

    with span("analytics.get_home_metrics"):
        home = await homes.get_home(home_id)
        window = cycle_window(home.rotation_policy, reference)

        assignments = await list_cycle_assignments(home_id=home_id, window=window)
        completed = sum(1 for a in assignments if a.status == AssignmentStatus.COMPLETED)
        pending = sum(1 for a in assignments if a.status == AssignmentStatus.PENDING)
        per_member = Counter(a.member_id for a in assignments)

        members = await homes.list_active_members(home_id)

        metrics = HomeMetrics(
            home_id=home_id,
            cycle_start=window.start.isoformat(),
            cycle_end=window.end.isoformat(),
            goal_percentage=_goal_for(home),
            completion_percentage=calculate_completion_percentage(completed, len(assignments)),
            rotation_percentage=calculate_rotation_percentage(per_member.values()),
            consecutive_cycles=await calculate_consecutive_cycles(home=home, window=window),
            total_tasks=len(assignments),
            completed_tasks=completed,
            pending_tasks=pending,
            active_members=len(members),
            total_points_earned=sum(m.total_points for m in members),
        )

    if reference is None:
        await store_metrics(metrics)
    return metrics


async def get_zone_status(*, home_id: str, reference: datetime | None = None) -> list[ZoneStatus]:
    """Per-zone completion in the current cycle. Tasks without a zone are not counted."""
    with span("analytics.get_zone_status"):
        home = await homes.get_home(home_id)
        window = cycle_window(home.rotation_policy, reference)

        zones = await homes.list_zones(home_id)
        tasks = {task.id: task for task in await homes.list_tasks(home_id)}
        assignments = await list_cycle_assignments(home_id=home_id, window=window)

        totals: Counter[str] = Counter()
        completed: Counter[str] = Counter()
        for assignment in assignments:
            task = tasks.get(assignment.task_id)
            if task is None or task.zone_id is None:
                continue
            totals[task.zone_id] += 1
            if assignment.status == AssignmentStatus.COMPLETED:
                completed[task.zone_id] += 1

        return [
            ZoneStatus(
                zone_id=zone.id,
                zone_name=zone.name,
                total=totals[zone.id],
                completed=completed[zone.id],
                percentage=calculate_completion_percentage(completed[zone.id], totals[zone.id]),
            )
            for zone in zones
        ]
