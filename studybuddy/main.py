from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
import time
import structlog

from studybuddy.db import init_db
from studybuddy.routers import documents as documents_router
from studybuddy.routers import doubts as doubts_router
from studybuddy.routers import flashcards as flashcards_router
from studybuddy.routers import quizzes as quizzes_router
from studybuddy.routers import study as study_router
from studybuddy.services.logging import configure_logging, log_api_request
from studybuddy.services.monitoring import health_checker, get_metrics, REQUEST_COUNT, REQUEST_DURATION
from studybuddy.middleware.rate_limit import limiter, rate_limit_exceeded_handler

# Configure logging
configure_logging()
logger = structlog.get_logger()

app = FastAPI(
    title="StudyBuddy",
    description="Study assistant API: PDF notes, AI flashcards, quizzes, summaries and doubt solving",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# Add middleware for request logging and metrics
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()

    log_api_request(request)

    try:
        response = await call_next(request)
    except Exception as e:
        log_api_request(request, error=e)
        raise

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()

    REQUEST_DURATION.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(process_time)

    response.response_time = process_time
    log_api_request(request, response)

    return response


# ----------------- Health & Monitoring Endpoints -----------------
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return health_checker.get_health_status()


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return get_metrics()


# ----------------- Startup -----------------
@app.on_event("startup")
def on_startup():
    init_db()


# ----------------- Routers -----------------
app.include_router(documents_router.router)
app.include_router(flashcards_router.router)
app.include_router(quizzes_router.router)
app.include_router(doubts_router.router)
app.include_router(study_router.router)
