"""Tests for the per-category progress variants and how completions reach them."""

from datetime import date, timedelta

import pytest

from src.domain.challenge import (
    CollectiveProgress,
    MasteryProgress,
    StreakProgress,
    TaskCompletionProgress,
    TeamGoalProgress,
    VarietyProgress,
    _ProgressBase,
    initial_progress,
)
from src.modules.gamification import challenges
from tests.conftest import NOW


DAY = date(2026, 10, 21)


@pytest.mark.unit
class TestProgressBase:
    """The base progress class only declares the contract."""

    def test_base_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            _ProgressBase()

    @pytest.mark.parametrize(
        "variant",
        [TaskCompletionProgress, StreakProgress, VarietyProgress, MasteryProgress, CollectiveProgress, TeamGoalProgress],
    )
    def test_every_variant_is_concrete(self, variant):
        progress = variant()

        assert progress.is_complete in (True, False)

    def test_initial_progress_reads_requirements(self):
        progress = initial_progress("variety", {"zone_count": 2, "task_count": 5})

        assert isinstance(progress, VarietyProgress)
        assert (progress.target_zones, progress.target_tasks) == (2, 5)


@pytest.mark.unit
class TestStreakProgress:
    """A streak counts consecutive days with at least one completion."""

    def test_first_completion_starts_streak(self):
        progress = StreakProgress(target=2).record_task(task_id="1", zone_id=None, completed_on=DAY)

        assert progress.current_streak == 1
        assert progress.last_completion == DAY
        assert progress.is_complete is False

    def test_same_day_is_unchanged(self):
        progress = StreakProgress(current_streak=1, last_completion=DAY)

        again = progress.record_task(task_id="2", zone_id=None, completed_on=DAY)

        assert again == progress

    def test_next_day_extends(self):
        progress = StreakProgress(target=2, current_streak=1, last_completion=DAY)

        extended = progress.record_task(task_id="1", zone_id=None, completed_on=DAY + timedelta(days=1))

        assert extended.current_streak == 2
        assert extended.is_complete is True

    def test_gap_restarts_at_one(self):
        progress = StreakProgress(current_streak=4, last_completion=DAY)

        restarted = progress.record_task(task_id="1", zone_id=None, completed_on=DAY + timedelta(days=2))

        assert restarted.current_streak == 1
        assert restarted.last_completion == DAY + timedelta(days=2)


@pytest.mark.unit
class TestVarietyProgress:
    """Variety needs both enough zones and enough distinct tasks."""

    def test_both_targets_required(self):
        progress = VarietyProgress(target_zones=2, target_tasks=2)

        progress = progress.record_task(task_id="1", zone_id="kitchen", completed_on=DAY)
        progress = progress.record_task(task_id="2", zone_id="kitchen", completed_on=DAY)
        assert progress.completed_tasks == ["1", "2"]
        assert progress.is_complete is False

        progress = progress.record_task(task_id="2", zone_id="bath", completed_on=DAY)
        assert progress.completed_zones == ["kitchen", "bath"]
        assert progress.completed_tasks == ["1", "2"]
        assert progress.is_complete is True

    def test_task_without_zone_adds_no_zone(self):
        progress = VarietyProgress().record_task(task_id="1", zone_id=None, completed_on=DAY)

        assert progress.completed_zones == []
        assert progress.completed_tasks == ["1"]


@pytest.mark.unit
class TestMasteryProgress:
    """Mastery counts distinct tasks, optionally only fully stepped ones."""

    def test_repeats_count_once(self):
        progress = MasteryProgress(target=2)
        progress = progress.record_task(task_id="1", zone_id=None, completed_on=DAY)
        progress = progress.record_task(task_id="1", zone_id=None, completed_on=DAY)

        assert progress.completed_tasks == ["1"]
        assert progress.is_complete is False

    def test_open_steps_ignored_unless_required(self):
        progress = MasteryProgress().record_task(task_id="1", zone_id=None, completed_on=DAY, steps_done=False)

        assert progress.is_complete is True

    def test_all_steps_required_skips_unfinished_checklists(self):
        progress = MasteryProgress.from_requirements({"task_count": 1, "all_steps": True})

        skipped = progress.record_task(task_id="1", zone_id=None, completed_on=DAY, steps_done=False)
        counted = skipped.record_task(task_id="1", zone_id=None, completed_on=DAY, steps_done=True)

        assert skipped.completed_tasks == []
        assert counted.completed_tasks == ["1"]
        assert counted.is_complete is True


@pytest.mark.unit
class TestTeamGoalProgress:
    """Team goal tracks each member against a per-member minimum."""

    def test_counts_every_completion(self):
        progress = TeamGoalProgress(target_per_member=2)
        progress = progress.record_task(task_id="1", zone_id=None, completed_on=DAY)
        assert progress.is_complete is False

        progress = progress.record_task(task_id="1", zone_id=None, completed_on=DAY)
        assert progress.member_completed == 2
        assert progress.is_complete is True


async def start_challenge(home, member, *, category, requirements, challenge_type="individual"):
    template = await challenges.create_challenge_template(
        {
            "name": f"{category}_round",
            "title": category.replace("_", " ").title(),
            "challenge_type": challenge_type,
            "category": category,
            "requirements": requirements,
            "duration_type": "full_cycle",
        }
    )
    return await challenges.instantiate_challenge(
        template_id=template.id,
        home_id=home.id,
        member_id=member.id if challenge_type == "individual" else None,
    )


@pytest.mark.unit
class TestProgressRouting:
    """update_challenge_progress hands each completion to the challenge's own variant."""

    async def test_task_completion(self, home, members, tasks):
        challenge = await start_challenge(home, members[0], category="task_completion", requirements={"task_count": 1})

        progress = await challenges.update_challenge_progress(
            challenge_id=challenge.id, task_id=tasks[2].id, member_id=members[0].id
        )

        assert progress.progress_data.completed_tasks == [tasks[2].id]
        assert progress.is_completed is True

    async def test_streak_across_days(self, home, members, tasks):
        challenge = await start_challenge(home, members[0], category="streak", requirements={"days": 2})

        first = await challenges.update_challenge_progress(
            challenge_id=challenge.id, task_id=tasks[0].id, member_id=members[0].id
        )
        second = await challenges.update_challenge_progress(
            challenge_id=challenge.id,
            task_id=tasks[1].id,
            member_id=members[0].id,
            now=NOW + timedelta(days=1),
        )

        assert first.progress_data.current_streak == 1
        assert first.is_completed is False
        assert second.progress_data.current_streak == 2
        assert second.is_completed is True

    async def test_variety_uses_task_zone(self, home, members, tasks, kitchen):
        challenge = await start_challenge(
            home, members[0], category="variety", requirements={"zone_count": 1, "task_count": 2}
        )

        await challenges.update_challenge_progress(challenge_id=challenge.id, task_id=tasks[2].id, member_id=members[0].id)
        progress = await challenges.update_challenge_progress(
            challenge_id=challenge.id, task_id=tasks[0].id, member_id=members[0].id
        )

        assert progress.progress_data.completed_zones == [kitchen.id]
        assert progress.progress_data.completed_tasks == [tasks[2].id, tasks[0].id]
        assert progress.is_completed is True

    async def test_mastery(self, home, members, tasks):
        challenge = await start_challenge(home, members[0], category="mastery", requirements={"task_count": 2})

        await challenges.update_challenge_progress(challenge_id=challenge.id, task_id=tasks[0].id, member_id=members[0].id)
        progress = await challenges.update_challenge_progress(
            challenge_id=challenge.id, task_id=tasks[0].id, member_id=members[0].id
        )

        assert progress.progress_data.completed_tasks == [tasks[0].id]
        assert progress.is_completed is False

    async def test_collective(self, home, members, tasks):
        challenge = await start_challenge(
            home, members[0], category="collective", requirements={"total_tasks": 2}, challenge_type="group"
        )

        progress = await challenges.update_challenge_progress(
            challenge_id=challenge.id, task_id=tasks[0].id, member_id=members[1].id
        )

        assert progress.progress_data.member_contribution == 1
        assert progress.progress_data.team_total == 1

    async def test_team_goal_is_per_member(self, home, members, tasks):
        challenge = await start_challenge(
            home, members[0], category="team_goal", requirements={"min_tasks_per_member": 1}, challenge_type="group"
        )

        ana = await challenges.update_challenge_progress(
            challenge_id=challenge.id, task_id=tasks[0].id, member_id=members[0].id
        )
        ben = await challenges.get_challenge_progress(challenge_id=challenge.id, member_id=members[1].id)

        assert ana.is_completed is True
        assert ben.progress_data.member_completed == 0
        assert ben.is_completed is False
        assert (await challenges.get_challenge(challenge.id)).status == "active"
