import asyncio

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from download_proxy.api import download, health, info
from download_proxy.config.settings import config
from download_proxy.core.errors import RateLimitExceededError
from download_proxy.core.logging import REQUEST_ID_HEADER, bind_request_id, logger, setup_logging
from download_proxy.core.state import state
from download_proxy.infra.redis import close_redis, init_redis
from download_proxy.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder

app = FastAPI(
    title=config.api.title,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None,
    dependencies=[Depends(bind_request_id)],
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", REQUEST_ID_HEADER],
)


@app.exception_handler(RateLimitExceededError)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError):
    return PlainTextResponse(
        str(exc),
        status_code=429,
        headers={"Retry-After": str(exc.retry_after)},
    )


# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(info.router, tags=["Info"])
app.include_router(download.router, tags=["Download"])


async def detect_ytdlp_version() -> str:
    try:
        result = await SubprocessExecutor.run(YTDLPCommandBuilder.build_version_command(), timeout=10.0)
    except (OSError, asyncio.TimeoutError) as e:
        logger.warning(f"yt-dlp not available: {e}")
        return "unknown"
    if result.returncode != 0:
        return "unknown"
    return result.stdout.decode(errors="replace").strip()


@app.on_event("startup")
async def startup_event():
    setup_logging()
    state.ytdlp_version = await detect_ytdlp_version()
    logger.info(f"yt-dlp version: {state.ytdlp_version}")
    state.redis = await init_redis()

@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()
