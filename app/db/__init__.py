from .models import Base, SchedulerRunModel, TWAPSessionModel

__all__ = ["Base", "SchedulerRunModel", "TWAPSessionModel"]
