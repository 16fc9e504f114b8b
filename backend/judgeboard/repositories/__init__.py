"""Repositories that translate between ORM models and domain records."""

from .judge_users import JudgeUserRepository, judge_users

__all__ = ["JudgeUserRepository", "judge_users"]
