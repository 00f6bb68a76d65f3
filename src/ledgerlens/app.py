from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ledgerlens.api.routes import categorize, health, insights
from ledgerlens.classifiers.llm import AICategorizationClient
from ledgerlens.core import settings
from ledgerlens.core.cache import TTLCache
from ledgerlens.core.rate_limit import RateLimiter
from ledgerlens.errors import RateLimitExceededError, ValidationError
from ledgerlens.logger import get_logger, setup_logging
from ledgerlens.services.categorization import CategorizationOrchestrator
from ledgerlens.services.insights import InsightOrchestrator

logger = get_logger(__name__)


def build_ai_client(config: settings.EngineConfig) -> AICategorizationClient | None:
    if not settings.ai_enabled():
        logger.warning("OPENAI_API_KEY not set. Categorization will use the rule-based fallback only.")
        return None
    logger.info(
        "AI categorization enabled: model=%s, base_url=%s",
        config.openai_model,
        config.openai_base_url or "default",
    )
    return AICategorizationClient(
        model=config.openai_model,
        base_url=config.openai_base_url,
        timeout=config.ai_timeout_seconds,
        max_retries=config.ai_max_retries,
        temperature=config.ai_temperature,
        max_tokens=config.ai_max_tokens,
        recent_context_limit=config.recent_context_limit,
    )


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()
        config = settings.load_engine_config()

        cache: TTLCache = TTLCache(ttl_ms=config.cache_ttl_ms, name="categorization")
        cache.start_sweeper(config.cache_sweep_interval_ms)

        categorizer = CategorizationOrchestrator(
            ai_client=build_ai_client(config),
            cache=cache,
            config=config,
        )
        app.state.categorizer = categorizer
        app.state.insights = InsightOrchestrator(config=config)
        app.state.insights_limiter = RateLimiter(
            limit=config.insights_rate_limit,
            window_ms=config.insights_rate_window_ms,
            name="insights",
        )

        logger.info("Services initialized.")
        yield
        categorizer.shutdown()
        cache.shutdown()
        logger.info("Service shutting down.")

    app = FastAPI(title="LedgerLens", lifespan=lifespan)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info("[API] Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=422, content=exc.to_dict())

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content=exc.to_dict(),
            headers={"Retry-After": str(max(1, round(exc.reset_after_s)))},
        )

    app.include_router(categorize.router)
    app.include_router(insights.router)
    app.include_router(health.router)

    return app


app = create_app()
