from routes.emoji import emoji_router
from routes.auth import auth_router
from token_wallet.routes import token_wallet_router
from services.emoji_storage import default_upload_dir
from services.verification_codes import get_code_store
from utils.environment import ENVIRONMENT, get_cors_origins
from utils.errors import AppError
from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import logging
from pathlib import Path
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Uploaded sources and generated emojis, served at the site root
UPLOAD_DIR = default_upload_dir()
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

# Create the main app
app = FastAPI(title="Emoji Generator - Token Metered Image API")

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


@api_router.get("/health")
async def health():
    return {"message": "Server is running!"}


api_router.include_router(emoji_router)
api_router.include_router(auth_router)
api_router.include_router(token_wallet_router)

app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=get_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ==================== ERROR HANDLERS ====================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


# Static mount goes last so /api routes take precedence
app.mount("/", StaticFiles(directory=str(UPLOAD_DIR)), name="uploads")

scheduler = AsyncIOScheduler()


@app.on_event("startup")
async def startup():
    # Check database connection first - fail fast if database is unavailable
    from database import check_db_connection, init_db
    db_ok, db_error = await check_db_connection()
    if not db_ok:
        logger.critical(f"Database connection failed on startup: {db_error}")
        raise RuntimeError(
            f"Cannot start application - database connection failed: {db_error}")

    # Create ledger tables (idempotent)
    await init_db()

    # Sweep expired verification codes every minute
    scheduler.add_job(
        get_code_store().purge_expired,
        IntervalTrigger(minutes=1),
        id='verification_code_sweep',
        replace_existing=True
    )

    scheduler.start()
    logger.info(f"Emoji Generator started (ENVIRONMENT={ENVIRONMENT}) - verification sweep: every 1 min")


@app.on_event("shutdown")
async def shutdown():
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler shut down")

    from database import close_db
    await close_db()
