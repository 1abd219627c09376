"""
Dependency Injection

FastAPI dependencies for routes.
"""

from typing import Annotated

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from companion.infra.db import get_db
from companion.infra.redis import get_redis
from companion.live.orchestrator import SessionOrchestrator

# Type aliases for common dependencies
SessionDep = Annotated[AsyncSession, Depends(get_db)]
RedisDep = Annotated[Redis, Depends(get_redis)]


def get_orchestrator(request: Request) -> SessionOrchestrator:
    return request.app.state.orchestrator


OrchestratorDep = Annotated[SessionOrchestrator, Depends(get_orchestrator)]
