"""Gamification module: XP, mastery levels, achievements and timed challenges."""

from src.core.module import ScheduledJob


class GamificationModule:
    """Gamification module layered over task completion.

    Provides:
    - Append-only XP ledger with mastery levels recomputed from total XP
    - Rule-based achievement unlocking
    - Template-driven individual and group challenges with typed progress
    - Single-claim challenge rewards
    """

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        return "gamification"

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        return "XP, mastery levels, achievements and challenges"

    def get_table_schemas(self) -> dict[str, str]:
        """Return table schemas for this module."""
        return {
            "challenge_templates": """CREATE TABLE IF NOT EXISTS challenge_templates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        name TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        challenge_type TEXT NOT NULL CHECK (challenge_type IN ('individual', 'group')),
        category TEXT NOT NULL CHECK (
            category IN ('task_completion', 'streak', 'variety', 'mastery', 'collective', 'team_goal')
        ),
        requirements TEXT NOT NULL DEFAULT '{}',
        duration_type TEXT NOT NULL DEFAULT 'daily' CHECK (
            duration_type IN ('daily', 'quarter_cycle', 'half_cycle', 'full_cycle', 'multi_cycle')
        ),
        duration_multiplier REAL NOT NULL DEFAULT 1.0,
        base_xp INTEGER NOT NULL DEFAULT 10,
        difficulty_multiplier REAL NOT NULL DEFAULT 1.0,
        min_mastery_level TEXT,
        requires_min_tasks INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
            "active_challenges": """CREATE TABLE IF NOT EXISTS active_challenges (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        template_id INTEGER REFERENCES challenge_templates(id),
        home_id INTEGER NOT NULL REFERENCES homes(id),
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        challenge_type TEXT NOT NULL,
        category TEXT NOT NULL,
        requirements TEXT NOT NULL DEFAULT '{}',
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        cycle_aligned INTEGER NOT NULL DEFAULT 0,
        xp_reward INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'completed', 'expired', 'cancelled')),
        assigned_to INTEGER REFERENCES members(id)
    )""",
            "challenge_progress": """CREATE TABLE IF NOT EXISTS challenge_progress (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        challenge_id INTEGER NOT NULL REFERENCES active_challenges(id),
        member_id INTEGER NOT NULL REFERENCES members(id),
        progress_data TEXT NOT NULL,
        is_completed INTEGER NOT NULL DEFAULT 0,
        completed_at TEXT,
        xp_awarded INTEGER NOT NULL DEFAULT 0,
        UNIQUE(challenge_id, member_id)
    )""",
            "achievements": """CREATE TABLE IF NOT EXISTS achievements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        name TEXT NOT NULL UNIQUE,
        description TEXT NOT NULL DEFAULT '',
        icon TEXT,
        requirement_type TEXT NOT NULL,
        requirement_value INTEGER NOT NULL DEFAULT 0
    )""",
            "member_achievements": """CREATE TABLE IF NOT EXISTS member_achievements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        member_id INTEGER NOT NULL REFERENCES members(id),
        achievement_id INTEGER NOT NULL REFERENCES achievements(id),
        unlocked_at TEXT NOT NULL,
        UNIQUE(member_id, achievement_id)
    )""",
            "xp_transactions": """CREATE TABLE IF NOT EXISTS xp_transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        member_id INTEGER NOT NULL REFERENCES members(id),
        amount INTEGER NOT NULL,
        source TEXT NOT NULL,
        reference_type TEXT,
        reference_id TEXT,
        description TEXT
    )""",
        }

    def get_indexes(self) -> list[str]:
        """Return indexes for this module's tables."""
        return [
            "CREATE INDEX IF NOT EXISTS idx_active_challenges_home_status ON active_challenges (home_id, status)",
            "CREATE INDEX IF NOT EXISTS idx_challenge_progress_member ON challenge_progress (member_id)",
            "CREATE INDEX IF NOT EXISTS idx_xp_transactions_member ON xp_transactions (member_id, created)",
        ]

    def get_scheduled_jobs(self) -> list[ScheduledJob]:
        """Return scheduled jobs for this module."""
        import src.modules.gamification.scheduler_jobs

        return src.modules.gamification.scheduler_jobs.get_scheduled_jobs()
