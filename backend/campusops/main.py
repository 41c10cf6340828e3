"""FastAPI application."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.campusops.api.routes.auth import router as auth_router
from backend.campusops.api.routes.campus import router as campus_router
from backend.campusops.api.routes.events import router as events_router
from backend.campusops.api.routes.health import router as health_router
from backend.campusops.api.routes.metrics import router as metrics_router
from backend.campusops.api.routes.organization import router as organization_router
from backend.campusops.api.routes.platform import router as platform_router
from backend.campusops.api.routes.settings_roles import router as settings_roles_router
from backend.campusops.api.routes.settings_teams import router as settings_teams_router
from backend.campusops.api.routes.settings_users import router as settings_users_router
from backend.campusops.api.routes.tickets import router as tickets_router
from backend.campusops.api.routes.user import router as user_router
from backend.campusops.errors import CampusOpsError, InvalidOrganization, InvalidToken
from backend.campusops.utils.logging import denial_logger
from backend.campusops.utils.metrics import tenancy_metrics

app = FastAPI(title="CampusOps API", version="0.1.0")

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(auth_router)
app.include_router(user_router)
app.include_router(organization_router)
app.include_router(campus_router)
app.include_router(tickets_router)
app.include_router(events_router)
app.include_router(settings_users_router)
app.include_router(settings_roles_router)
app.include_router(settings_teams_router)
app.include_router(platform_router)

# Raised before any scoped operation ran, so nothing else has counted them
_AUTHENTICATION_DENIALS = {
    InvalidToken: "invalid_token",
    InvalidOrganization: "invalid_organization",
}


@app.exception_handler(CampusOpsError)
async def campusops_error_handler(request: Request, exc: CampusOpsError) -> JSONResponse:
    """Translate domain errors into the ``{"detail": {code, message}}`` envelope."""
    denial_logger.log_error(request.method, request.url.path, exc)

    reason = _AUTHENTICATION_DENIALS.get(type(exc))
    if reason is not None:
        tenancy_metrics.record_denial(reason)

    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"code": exc.code, "message": exc.message}},
        headers=headers,
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "CampusOps API", "version": "0.1.0"}
