from fastapi import APIRouter
from .auth import router as auth_router
from .projects import router as projects_router
from .sprints import router as sprints_router
from .backlog import router as backlog_router
from .tasks import router as tasks_router
from .metrics import router as metrics_router
from .admin import router as admin_router

api_router = APIRouter()

# Include all sub-routers
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(projects_router, prefix="/projects", tags=["projects"])
api_router.include_router(sprints_router, prefix="/sprints", tags=["sprints"])
api_router.include_router(backlog_router, prefix="/backlog", tags=["backlog"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["tasks"])
api_router.include_router(metrics_router, prefix="/metrics", tags=["metrics"])
api_router.include_router(admin_router, prefix="/admin", tags=["admin"])
