import uuid
from typing import List, Optional

from fastapi import FastAPI, Depends, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from feedbackhub.config import settings
from feedbackhub.database import Base, engine, get_db
from feedbackhub.models.feedback import Feedback  # noqa: F401
from feedbackhub.models.project import Project  # noqa: F401
from feedbackhub.models.subscription import Subscription  # noqa: F401
from feedbackhub.schemas.feedback_schemas import (
    FeedbackOut,
    FeedbackStatsResponse,
    FeedbackSubmitResponse,
    FeedbackUpdateRequest,
    ProjectCreateRequest,
    ProjectOut,
    UsageResponse,
    VisibilityStats,
    WidgetFeedbackRequest,
)
from feedbackhub.pipelines.ingestion_pipeline import ingest_feedback
from feedbackhub.services.classifier_service import FeedbackClassifier, build_classifier
from feedbackhub.services.errors import LimitExceededError, NotFoundError, ValidationError
from feedbackhub.services.feedback_service import (
    create_project,
    delete_feedback,
    get_feedback_stats,
    get_owned_project,
    update_feedback,
)
from feedbackhub.services.subscription_service import get_current_usage
from feedbackhub.services.usage_service import get_usage_stats
from feedbackhub.services.visibility_service import feedback_visibility_service
from feedbackhub.api.security import (
    check_rate_limit,
    check_widget_rate_limit,
    get_current_user_id,
    verify_api_token,
)
from feedbackhub.api.admin import router as admin_router
from feedbackhub.utils.logging_config import StructuredLogger, init_logging, request_id_var

# Initialize structured logging
init_logging()

logger = StructuredLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="FeedbackHub API",
    version="0.1.0",
    description="Feedback collection with AI classification and plan-based visibility",
    docs_url="/docs" if settings.debug else None,  # Disable docs in production
    redoc_url="/redoc" if settings.debug else None,
)

# One classifier per process; tests swap it through get_classifier
app.state.classifier = build_classifier()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.middleware("http")
async def add_rate_limit_headers(request: Request, call_next):
    response = await call_next(request)
    if hasattr(request.state, "rate_limit_remaining"):
        response.headers["X-RateLimit-Limit"] = str(request.state.rate_limit_limit)
        response.headers["X-RateLimit-Remaining"] = str(request.state.rate_limit_remaining)
    return response


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-Id"] = request_id
    return response


# ============== ERROR HANDLERS ==============


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(LimitExceededError)
async def limit_exceeded_handler(request: Request, exc: LimitExceededError):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=True, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def get_classifier(request: Request) -> FeedbackClassifier:
    return request.app.state.classifier


app.include_router(admin_router)

dashboard_dependencies = [Depends(verify_api_token), Depends(check_rate_limit)]


@app.get("/health")
def health():
    """Health check endpoint - no auth required."""
    return {"status": "ok"}


@app.get("/status")
def status_info(classifier: FeedbackClassifier = Depends(get_classifier)):
    """API status and configuration info."""
    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": settings.environment,
        "auth_enabled": bool(settings.api_token),
        "ai_classification": classifier.provider is not None,
        "rate_limit": {
            "requests": settings.rate_limit_requests,
            "window_seconds": settings.rate_limit_window,
            "widget_requests": settings.widget_rate_limit_requests,
            "project_requests": settings.project_rate_limit_requests,
        },
    }


# ============== WIDGET ==============


@app.post(
    "/widget/feedback",
    response_model=FeedbackSubmitResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_widget_feedback(
    payload: WidgetFeedbackRequest,
    request: Request,
    db: Session = Depends(get_db),
    classifier: FeedbackClassifier = Depends(get_classifier),
):
    """
    Public submission endpoint used by the embeddable widget.
    Rate limited per IP and per project.
    """
    check_widget_rate_limit(request, payload.project_id)

    feedback = ingest_feedback(
        db,
        classifier,
        project_id=payload.project_id,
        content=payload.content,
        email=payload.email,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    return FeedbackSubmitResponse(
        id=feedback.id,
        status="received",
        submitted_at=feedback.created_at,
        category=feedback.category,
        sentiment=feedback.sentiment,
    )


# ============== PROJECTS & USAGE ==============


@app.post(
    "/projects",
    response_model=ProjectOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=dashboard_dependencies,
)
def create_project_endpoint(
    payload: ProjectCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return create_project(db, user_id, payload.name, payload.url, payload.description)


@app.get("/subscription/can-create-project", dependencies=dashboard_dependencies)
def can_create_project_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    usage = get_current_usage(db, user_id)
    return {
        "can_create": usage.projects_used < usage.projects_limit,
        "projects_used": usage.projects_used,
        "projects_limit": usage.projects_limit,
        "plan": usage.plan,
    }


@app.get("/usage", response_model=UsageResponse, dependencies=dashboard_dependencies)
def usage_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return get_usage_stats(db, user_id)


# ============== FEEDBACK MANAGEMENT ==============


@app.get(
    "/projects/{project_id}/feedback",
    response_model=List[FeedbackOut],
    dependencies=dashboard_dependencies,
)
def list_project_feedback(
    project_id: int,
    skip: int = 0,
    take: int = 50,
    include_hidden: bool = False,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Feedback in rank order. Hidden items are only listed on request."""
    return feedback_visibility_service.get_visible_feedback(
        db,
        user_id,
        project_id,
        skip=max(0, skip),
        take=max(1, min(take, 200)),
        include_hidden=include_hidden,
    )


@app.put("/feedback/{feedback_id}", response_model=FeedbackOut, dependencies=dashboard_dependencies)
def update_feedback_endpoint(
    feedback_id: int,
    payload: FeedbackUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return update_feedback(db, user_id, feedback_id, payload.model_dump(exclude_unset=True))


@app.delete("/feedback/{feedback_id}", dependencies=dashboard_dependencies)
def delete_feedback_endpoint(
    feedback_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_feedback(db, user_id, feedback_id)
    return {"message": "Feedback deleted", "id": feedback_id}


@app.get("/feedback/stats", response_model=FeedbackStatsResponse, dependencies=dashboard_dependencies)
def feedback_stats_endpoint(
    project_id: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if project_id is not None:
        get_owned_project(db, user_id, project_id)
    return get_feedback_stats(db, user_id, project_id)


@app.get("/feedback/visibility", response_model=VisibilityStats, dependencies=dashboard_dependencies)
def visibility_stats_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return feedback_visibility_service.get_visibility_stats(db, user_id)


@app.post("/feedback/visibility", response_model=VisibilityStats, dependencies=dashboard_dependencies)
def recompute_visibility_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Re-rank the tenant's feedback now and return the new counts."""
    feedback_visibility_service.recompute_visibility(db, user_id)
    return feedback_visibility_service.get_visibility_stats(db, user_id)
