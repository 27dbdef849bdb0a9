from fastapi import APIRouter
from app.api.v1.endpoints import approve, drafts, generate, projects

api_router = APIRouter()

api_router.include_router(generate.router, prefix="/generate", tags=["Generate"])
api_router.include_router(approve.router, prefix="/approve", tags=["Approve"])
api_router.include_router(drafts.router, prefix="/drafts", tags=["Drafts"])
api_router.include_router(projects.router, prefix="/projects", tags=["Projects"])

__all__ = ["api_router"]
