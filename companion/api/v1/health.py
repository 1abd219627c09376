"""
Health check endpoints
"""

from fastapi import APIRouter
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from companion.core.deps import OrchestratorDep, RedisDep, SessionDep

router = APIRouter()


@router.get("/health")
async def health_check(db: SessionDep, redis: RedisDep):
    """API, database and redis status"""
    database = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        database = "error"

    redis_status = "ok"
    try:
        await redis.ping()
    except (RedisError, OSError):
        redis_status = "error"

    return {"api": "ok", "database": database, "redis": redis_status}


@router.get("/health/audio-sources")
async def audio_sources(orchestrator: OrchestratorDep):
    """Which external providers and catalogs are configured"""
    return {
        "sources": orchestrator.diagnostics(),
        "liveSessions": len(orchestrator.live_session_ids()),
    }
