import logging
import os
import time
from typing import List, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Depends, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session

import config
from admission import AdmissionPipeline, check_rate_limit
from db import Base, engine, get_db
from errors import AppError, RateLimitExceeded
from notifications import ADMIN_ALERT, SUBMITTER_CONFIRMATION, Mailer, get_mailer
from ratelimit import SlidingWindowRateLimiter
from recaptcha import RecaptchaVerifier, get_bot_verifier
from schemas import AdminLogin, MessageOut, SubmissionCreate, SubmissionCreated, SubmissionOut, TokenOut
from security import authenticate, verify_admin
from store import SubmissionStore

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if config.APP_ENV == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    ),
)

logger = structlog.get_logger()

SUCCESS_MESSAGE = "Survey submitted successfully"

app = FastAPI(title="Survey Intake API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)

Base.metadata.create_all(bind=engine)

app.state.rate_limiter = SlidingWindowRateLimiter(
    max_hits=config.RATE_LIMIT_MAX,
    window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response

# ------------------------
# Error rendering
# ------------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    headers = None
    if isinstance(exc, RateLimitExceeded) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, status=exc.status_code, reason=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)

@app.exception_handler(RequestValidationError)
async def invalid_body_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"message": "Invalid input"})

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unexpected_error", path=request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server error"})

# ------------------------
# Dependencies
# ------------------------
def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.rate_limiter

def client_ip_of(request: Request) -> str:
    """Source address of the request; first X-Forwarded-For hop when behind a trusted proxy."""
    if config.TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"

def enforce_rate_limit(request: Request, limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter)) -> None:
    # route-level dependency: resolved before the body is validated
    check_rate_limit(limiter, client_ip_of(request))


@app.get("/health")
def health():
    """Basic readiness check.

    Returns:
        dict: {"ok": True}
    """
    return {"ok": True}

# ------------------------
# Admin: session
# ------------------------
@app.post("/admin/session", response_model=TokenOut, responses={401: {"model": MessageOut}})
def create_admin_session(body: AdminLogin):
    """Exchange the admin credential pair for a signed, 1-day token.

    Args:
        body (AdminLogin): {username, password}.

    Returns:
        dict: {"token": str}

    Raises:
        AuthRejected: 401 "Invalid credentials" for any other pair.
    """
    return {"token": authenticate(body.username, body.password)}

# ------------------------
# Public: submit survey
# ------------------------
@app.post(
    "/submissions",
    status_code=201,
    response_model=SubmissionCreated,
    dependencies=[Depends(enforce_rate_limit)],
    responses={400: {"model": MessageOut}, 429: {"model": MessageOut}, 500: {"model": MessageOut}},
)
def create_submission(
    payload: SubmissionCreate,
    request: Request,
    db: Session = Depends(get_db),
    verifier: RecaptchaVerifier = Depends(get_bot_verifier),
    mailer: Mailer = Depends(get_mailer),
):
    """Run the admission pipeline, store the submission and send both notifications.

    A filled honeypot gets a plain 200 success with nothing stored or sent.
    Notification failures are reported in ``notifications`` and never fail
    the request.

    Returns:
        dict: {"message", "survey", "notifications": {"userEmail", "adminEmail"}}
    """
    store = SubmissionStore(db)
    pipeline = AdmissionPipeline(verifier, store)
    ip = client_ip_of(request)

    data = pipeline.admit(payload.model_dump(), ip)
    if data is None:
        return JSONResponse(status_code=200, content={"message": SUCCESS_MESSAGE})

    row = store.insert({
        **data,
        "ip_address": ip,
        "user_agent": request.headers.get("user-agent", "")[:500],
    })
    logger.info("submission_stored", submission_id=row.id, ip=ip)

    user_sent = mailer.send(data["email"], SUBMITTER_CONFIRMATION, data)
    admin_sent = mailer.send(config.ADMIN_EMAIL, ADMIN_ALERT, data)

    return {
        "message": SUCCESS_MESSAGE,
        "survey": SubmissionOut.model_validate(row),
        "notifications": {
            "userEmail": "sent" if user_sent else "failed",
            "adminEmail": "sent" if admin_sent else "failed",
        },
    }

# ------------------------
# Admin: list / export submissions
# ------------------------
@app.get(
    "/submissions",
    response_model=List[SubmissionOut],
    dependencies=[Depends(verify_admin)],
    responses={401: {"model": MessageOut}},
)
def list_submissions(
    response: Response,
    search: Optional[str] = Query(default=None, max_length=200),
    skip: int = Query(default=0, ge=0),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """List submissions newest first.

    Args:
        search (str|None): case-insensitive substring over the business fields.
        skip (int): rows to skip.
        limit (int|None): page size; all rows when omitted.

    Returns:
        list[SubmissionOut]: with the unpaged match count in ``X-Total-Count``.
    """
    rows, total = SubmissionStore(db).list_all(search=search, skip=skip, limit=limit)
    response.headers["X-Total-Count"] = str(total)
    return rows

@app.get("/submissions/export.csv", dependencies=[Depends(verify_admin)])
def export_csv(db: Session = Depends(get_db)):
    """Export all submissions as CSV, newest first.

    Returns:
        Response: text/csv attachment `survey_submissions.csv`.
    """
    df = SubmissionStore(db).to_dataframe()
    csv_bytes = df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv",
                    headers={"Content-Disposition": "attachment; filename=survey_submissions.csv"})

# ------------------------
# Static client (production)
# ------------------------
def mount_frontend(target: FastAPI, build_dir: str) -> None:
    """Serve the bundled client; unknown paths fall back to index.html."""
    root = os.path.realpath(build_dir)
    index = os.path.join(root, "index.html")

    @target.get("/{full_path:path}", include_in_schema=False)
    def serve_frontend(full_path: str):
        candidate = os.path.realpath(os.path.join(root, full_path))
        if full_path and candidate.startswith(root + os.sep) and os.path.isfile(candidate):
            return FileResponse(candidate)
        return FileResponse(index)

if config.APP_ENV == "production":
    mount_frontend(app, config.FRONTEND_BUILD_DIR)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT)
