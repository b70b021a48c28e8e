"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, TaskPriority, TaskFilter)
- task_store.py: SQLite-backed storage + query/update helpers
- task_api.py: workflow helpers that mutate tasks and fan out notifications
- reminder_scheduler.py: polling loop that sends deadline reminders
"""
