"""Health checks"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config.database import get_db
from app.config.settings import get_settings

health_router = APIRouter()

REDIS_PING_TIMEOUT = 2


async def ping_redis() -> None:
    """One short-lived connection; the worker owns the long-lived Redis traffic"""
    client = redis.from_url(
        get_settings().REDIS_URL,
        socket_connect_timeout=REDIS_PING_TIMEOUT,
        socket_timeout=REDIS_PING_TIMEOUT,
    )
    try:
        await client.ping()
    finally:
        await client.aclose()


@health_router.get("/")
async def health_check():
    """Liveness"""
    return {"status": "healthy", "service": "booking-engine"}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Check the database and Redis"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        checks["database"] = f"unhealthy: {str(e)}"

    try:
        await ping_redis()
        checks["redis"] = "healthy"
    except (RedisError, OSError) as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    healthy = all(status == "healthy" for status in checks.values())
    checks["overall"] = "healthy" if healthy else "degraded"
    return checks
