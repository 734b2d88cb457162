# Jobs Package - Scheduled background tasks
from .maintenance import MaintenanceScheduler, start_scheduler, stop_scheduler, purge_expired_drafts

__all__ = ["MaintenanceScheduler", "start_scheduler", "stop_scheduler", "purge_expired_drafts"]
