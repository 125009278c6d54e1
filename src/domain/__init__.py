"""Domain models and DTOs."""

from src.domain.assignment import Assignment, AssignmentStatus, AvailableTask, Cancellation, TaskCompletion
from src.domain.challenge import (
    ActiveChallenge,
    ChallengeCategory,
    ChallengeProgress,
    ChallengeStatus,
    ChallengeTemplate,
    ChallengeType,
    DurationType,
)
from src.domain.home import Home, RotationPolicy, Zone
from src.domain.member import MasteryLevel, Member, MemberRole, MemberStatus
from src.domain.progression import Achievement, MemberAchievement, RequirementType, XPSource, XPTransaction
from src.domain.task import Task, TaskFrequency


__all__ = [
    "Achievement",
    "ActiveChallenge",
    "Assignment",
    "AssignmentStatus",
    "AvailableTask",
    "Cancellation",
    "ChallengeCategory",
    "ChallengeProgress",
    "ChallengeStatus",
    "ChallengeTemplate",
    "ChallengeType",
    "DurationType",
    "Home",
    "MasteryLevel",
    "Member",
    "MemberAchievement",
    "MemberRole",
    "MemberStatus",
    "RequirementType",
    "RotationPolicy",
    "Task",
    "TaskCompletion",
    "TaskFrequency",
    "XPSource",
    "XPTransaction",
    "Zone",
]
