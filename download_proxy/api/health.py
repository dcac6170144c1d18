from fastapi import APIRouter
from redis.exceptions import RedisError

from download_proxy.config.settings import config
from download_proxy.core.state import state
from download_proxy.i18n import i18n

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint"""
    return {
        "status": i18n.get("response.status_running"),
        "service": config.api.title,
        "version": config.api.version,
        "ytdlp_version": state.ytdlp_version,
        "redis_enabled": state.redis is not None
    }


@router.get("/health")
async def health_check():
    """Lightweight health check"""
    redis_status = i18n.get("response.redis_disabled")
    if state.redis:
        try:
            await state.redis.ping()
            redis_status = i18n.get("response.redis_connected")
        except (RedisError, OSError):
            redis_status = i18n.get("response.redis_disconnected")

    return {
        "status": i18n.get("health.status"),
        "redis": redis_status
    }
