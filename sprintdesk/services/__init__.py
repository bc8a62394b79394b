from .engine import ScrumEngine
from .scheduler import SprintScheduler, SweepReport
from .sprint_service import ProjectSetup

__all__ = ["ScrumEngine", "SprintScheduler", "SweepReport", "ProjectSetup"]
