"""
FastAPI dependencies shared by the routes
"""
from fastapi import Request

from arcana.services.runtime import WorkflowRuntime


def get_runtime(request: Request) -> WorkflowRuntime:
    """Runtime built by the application lifespan"""
    return request.app.state.runtime
