"""Task manager — background job processing and cron scheduling.

Provides ``TaskManager`` for periodic jobs:
- Retry sweep (failed deliveries due for retry, orphaned and stuck attempts)
- Delivery retention cleanup
- Expired rate-limit window cleanup

and ``WorkerPool`` for bounded concurrent delivery and inbound handling.
"""

from __future__ import annotations

from webhook_service.taskmanager.manager import CronJob, TaskManager
from webhook_service.taskmanager.pool import WorkerPool

__all__ = ["CronJob", "TaskManager", "WorkerPool"]
