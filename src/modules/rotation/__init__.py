"""Rotation module: homes, members, tasks and the assignment cycle engine."""

from src.core.module import ScheduledJob


class RotationModule:
    """Rotation module for distributing household chores over repeating cycles.

    Provides:
    - Cycle boundary arithmetic shared by every other component
    - Load-balanced auto-assignment and cycle rollover
    - Cancellation and reclaim of pending work
    - Swap and help requests between members
    - Per-task step checklists
    - Completion recording with points, streaks and weeks active
    - Fairness metrics (completion and rotation percentages)
    """

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        return "rotation"

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        return "Chore rotation over daily, weekly, biweekly or monthly cycles with fairness metrics"

    def get_table_schemas(self) -> dict[str, str]:
        """Return table schemas for this module."""
        return {
            "homes": """CREATE TABLE IF NOT EXISTS homes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        name TEXT NOT NULL,
        created_by TEXT,
        rotation_policy TEXT NOT NULL DEFAULT 'weekly'
            CHECK (rotation_policy IN ('daily', 'weekly', 'biweekly', 'monthly')),
        goal_percentage INTEGER NOT NULL DEFAULT 80 CHECK (goal_percentage BETWEEN 0 AND 100),
        auto_rotation INTEGER NOT NULL DEFAULT 1
    )""",
            "zones": """CREATE TABLE IF NOT EXISTS zones (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        home_id INTEGER NOT NULL REFERENCES homes(id),
        name TEXT NOT NULL,
        icon TEXT
    )""",
            "members": """CREATE TABLE IF NOT EXISTS members (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        home_id INTEGER NOT NULL REFERENCES homes(id),
        user_id TEXT,
        name TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('admin', 'member')),
        status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'inactive')),
        total_points INTEGER NOT NULL DEFAULT 0,
        tasks_completed INTEGER NOT NULL DEFAULT 0,
        current_streak INTEGER NOT NULL DEFAULT 0,
        weeks_active INTEGER NOT NULL DEFAULT 0,
        mastery_level TEXT NOT NULL DEFAULT 'novice'
            CHECK (mastery_level IN ('novice', 'solver', 'expert', 'master', 'visionary')),
        total_xp INTEGER NOT NULL DEFAULT 0,
        challenges_completed INTEGER NOT NULL DEFAULT 0,
        group_challenges_completed INTEGER NOT NULL DEFAULT 0,
        speed_challenges_completed INTEGER NOT NULL DEFAULT 0,
        perfect_challenges INTEGER NOT NULL DEFAULT 0,
        joined_at TEXT
    )""",
            "tasks": """CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        home_id INTEGER NOT NULL REFERENCES homes(id),
        zone_id INTEGER REFERENCES zones(id),
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        icon TEXT,
        frequency TEXT NOT NULL DEFAULT 'weekly'
            CHECK (frequency IN ('daily', 'weekly', 'biweekly', 'monthly')),
        effort_points INTEGER NOT NULL DEFAULT 1,
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
            "task_assignments": """CREATE TABLE IF NOT EXISTS task_assignments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        home_id INTEGER NOT NULL REFERENCES homes(id),
        task_id INTEGER NOT NULL REFERENCES tasks(id),
        member_id INTEGER NOT NULL REFERENCES members(id),
        assigned_date TEXT NOT NULL,
        due_date TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (
            status IN ('pending', 'completed', 'skipped_cancelled', 'skipped_expired', 'skipped_reassigned')
        ),
        completed_at TEXT
    )""",
            "task_cancellations": """CREATE TABLE IF NOT EXISTS task_cancellations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        assignment_id INTEGER NOT NULL REFERENCES task_assignments(id),
        cancelled_by INTEGER NOT NULL REFERENCES members(id),
        reason TEXT NOT NULL DEFAULT '',
        is_available INTEGER NOT NULL DEFAULT 1,
        cancelled_at TEXT NOT NULL,
        taken_by INTEGER REFERENCES members(id),
        taken_at TEXT,
        UNIQUE(assignment_id)
    )""",
            "task_completions": """CREATE TABLE IF NOT EXISTS task_completions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        assignment_id INTEGER NOT NULL REFERENCES task_assignments(id),
        member_id INTEGER NOT NULL REFERENCES members(id),
        points_earned INTEGER NOT NULL DEFAULT 0,
        notes TEXT,
        evidence_url TEXT,
        completed_at TEXT NOT NULL
    )""",
            "task_steps": """CREATE TABLE IF NOT EXISTS task_steps (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        task_id INTEGER NOT NULL REFERENCES tasks(id),
        step_order INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        is_optional INTEGER NOT NULL DEFAULT 0,
        estimated_minutes INTEGER
    )""",
            "task_step_completions": """CREATE TABLE IF NOT EXISTS task_step_completions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        step_id INTEGER NOT NULL REFERENCES task_steps(id),
        assignment_id INTEGER NOT NULL REFERENCES task_assignments(id),
        completed_by INTEGER NOT NULL REFERENCES members(id),
        completed_at TEXT NOT NULL,
        UNIQUE(step_id, assignment_id)
    )""",
            "exchange_requests": """CREATE TABLE IF NOT EXISTS exchange_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        home_id INTEGER NOT NULL REFERENCES homes(id),
        assignment_id INTEGER NOT NULL REFERENCES task_assignments(id),
        requester_id INTEGER NOT NULL REFERENCES members(id),
        target_member_id INTEGER REFERENCES members(id),
        responder_id INTEGER REFERENCES members(id),
        request_type TEXT NOT NULL CHECK (request_type IN ('swap', 'help')),
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'accepted', 'rejected')),
        message TEXT NOT NULL DEFAULT '',
        responded_at TEXT
    )""",
        }

    def get_indexes(self) -> list[str]:
        """Return indexes for this module's tables."""
        return [
            # One pending assignment per task, member and day
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_assignments_unique_pending "
            "ON task_assignments (task_id, member_id, assigned_date) WHERE status = 'pending'",
            "CREATE INDEX IF NOT EXISTS idx_assignments_home_date ON task_assignments (home_id, assigned_date)",
            "CREATE INDEX IF NOT EXISTS idx_assignments_member_status ON task_assignments (member_id, status)",
            "CREATE INDEX IF NOT EXISTS idx_members_home_status ON members (home_id, status)",
            "CREATE INDEX IF NOT EXISTS idx_tasks_home_active ON tasks (home_id, is_active)",
            "CREATE INDEX IF NOT EXISTS idx_zones_home ON zones (home_id)",
            "CREATE INDEX IF NOT EXISTS idx_completions_member ON task_completions (member_id, completed_at)",
            "CREATE INDEX IF NOT EXISTS idx_steps_task ON task_steps (task_id, step_order)",
            # One open exchange request per assignment
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_exchange_unique_pending "
            "ON exchange_requests (assignment_id) WHERE status = 'pending'",
            "CREATE INDEX IF NOT EXISTS idx_exchange_requester ON exchange_requests (requester_id, status)",
        ]

    def get_scheduled_jobs(self) -> list[ScheduledJob]:
        """Return scheduled jobs for this module."""
        import src.modules.rotation.scheduler_jobs

        return src.modules.rotation.scheduler_jobs.get_scheduled_jobs()
