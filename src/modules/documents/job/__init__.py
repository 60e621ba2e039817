from .maintenance import start_maintenance_jobs

__all__ = ["start_maintenance_jobs"]
