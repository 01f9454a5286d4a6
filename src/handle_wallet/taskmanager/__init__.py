"""Task manager — periodic background jobs.

Provides ``TaskManager`` for recurring jobs such as polling the registry
for handles that are reserved or awaiting payment. Jobs run as ``asyncio``
tasks and can be added and cancelled individually while the manager runs.
"""

from __future__ import annotations

from handle_wallet.taskmanager.manager import CronJob, TaskManager

__all__ = ["CronJob", "TaskManager"]
