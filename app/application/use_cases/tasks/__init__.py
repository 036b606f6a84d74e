"""Task use cases."""

from app.application.use_cases.tasks.task_operations import TaskService, plan_task_intents

__all__ = ["TaskService", "plan_task_intents"]
