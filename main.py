import sys

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from owo.api.routes import router
from owo.config import get_settings
from owo.deps import get_ledger
from owo.errors import InvalidAmount, InvalidRange, LedgerError

settings = get_settings()

# Configure loguru
logger.remove()
logger.add(sys.stderr, level=settings.log_level, format="{time:HH:mm:ss} | {level:<7} | {message}")

app = FastAPI(title="Owo Ledger", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("{} {}", request.method, request.url.path)
    response: Response = await call_next(request)
    logger.info("→ {}", response.status_code)
    return response


app.include_router(router)

# Body fields whose type errors are reported as ledger failures instead of 422s
FIELD_ERRORS: dict[str, type[LedgerError]] = {
    "amount": InvalidAmount,
    "amountPerPerson": InvalidAmount,
    "openingBalance": InvalidAmount,
    "cycleNumber": InvalidRange,
    "totalMembers": InvalidRange,
}


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError):
    for error in exc.errors():
        loc = error.get("loc", ())
        error_type = FIELD_ERRORS.get(loc[-1]) if len(loc) == 2 and loc[0] == "body" else None
        if error_type:
            logger.info("Rejected {} {}: {}", loc[-1], error.get("input"), error.get("msg"))
            detail = {"error": error_type.__name__, "message": f"{loc[-1]}: {error.get('msg')}"}
            return JSONResponse(status_code=400, content={"detail": detail})
    return await request_validation_exception_handler(request, exc)


def resolve_ledger():
    """The ledger the routes see, honouring test overrides."""
    return app.dependency_overrides.get(get_ledger, get_ledger)()


@app.on_event("startup")
async def startup():
    """Open the ledger, then start the Telegram bot alongside FastAPI."""
    ledger = resolve_ledger()
    logger.info(
        "Ledger ready: new accounts open with ₦{:,}, history shows {} records",
        ledger.accounts.default_opening_balance,
        ledger.log.default_limit,
    )

    if not settings.telegram_bot_token:
        logger.warning("TELEGRAM_BOT_TOKEN not set, chat runs over POST /chat only")
        return

    from owo.bot.handler import build_bot_app

    bot_app = build_bot_app(settings.telegram_bot_token)
    app.state.bot = bot_app

    await bot_app.initialize()
    await bot_app.start()
    await bot_app.updater.start_polling(drop_pending_updates=True)
    logger.info("Telegram bot started (polling)")


@app.on_event("shutdown")
async def shutdown():
    """Stop the Telegram bot and flush the ledger file."""
    bot_app = getattr(app.state, "bot", None)
    if bot_app:
        await bot_app.updater.stop()
        await bot_app.stop()
        await bot_app.shutdown()
        app.state.bot = None
        logger.info("Telegram bot stopped")

    if get_ledger not in app.dependency_overrides:
        get_ledger().store.close()
        get_ledger.cache_clear()
        logger.info("Ledger closed")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
