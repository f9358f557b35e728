"""Cron scheduler for timed messages and actions."""

from nanoscout.cron.service import CronScheduler
from nanoscout.cron.types import CronAction, CronTaskConfig

__all__ = ["CronAction", "CronScheduler", "CronTaskConfig"]
