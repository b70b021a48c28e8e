"""
Notification subsystem.

Components:
- notification_models.py: data structures (Notification, NotificationType)
- notification_store.py: SQLite-backed notification log
- dispatcher.py: message texts + fan-out to every linked chat platform
"""
