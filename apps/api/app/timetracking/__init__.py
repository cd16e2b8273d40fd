from app.timetracking.models import TimeSession

__all__ = ["TimeSession"]
