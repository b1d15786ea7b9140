"""HTTP surface for the research agent.

POST /api/agent   {"companyName": str, "address"?: str}
    200 -> {"status": "success", "report": {...}, "source": "cache"|"live", "auditLog": [...]}
    500 -> {"status": "error", "message": str, "errorKind": str, "auditLog": [...]}
           (also when the orchestrator cannot be built from the environment)
    400 -> malformed body (not JSON, missing or non-string companyName)

Run with:
    uvicorn company_intel.api:app --port 3001
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from company_intel import __version__
from company_intel.config import ResearchConfig
from company_intel.errors import ConfigurationError
from company_intel.models import AgentResult
from company_intel.orchestrator import MSG_INTERNAL, Orchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


class AgentRequest(BaseModel):
    """Request payload for one research run."""

    model_config = ConfigDict(populate_by_name=True)

    company_name: str = Field(alias="companyName", description="Company to research.")
    address: Optional[str] = Field(default=None, description="Optional address for disambiguation.")

    @field_validator("company_name", mode="before")
    @classmethod
    def _require_text(cls, value: object) -> object:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("companyName must be a non-empty string")
        return value

    @field_validator("address", mode="before")
    @classmethod
    def _address_text(cls, value: object) -> object:
        if value is not None and not isinstance(value, str):
            raise ValueError("address must be a string")
        return value


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    """Process-wide orchestrator built from the environment.

    Failures are not cached, so a fixed environment takes effect on the
    next request.
    """
    try:
        return Orchestrator(config=ResearchConfig.from_env())
    except (ValueError, OSError) as e:
        raise ConfigurationError(str(e)) from e


@router.post("/agent")
def run_agent(
    payload: AgentRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Research one company and return the report with its audit log."""
    logger.info(f"Agent request for {payload.company_name!r}")
    result = orchestrator.run(payload.company_name, address=payload.address)
    if not result.ok:
        logger.error(f"Agent run failed ({result.error_kind}): {result.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.to_payload(),
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content=result.to_payload())


def create_app() -> FastAPI:
    app = FastAPI(
        title="company-intel",
        version=__version__,
        description="Company identity resolution and fact extraction agent",
    )

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "error", "message": "companyName is required."},
        )

    @app.exception_handler(ConfigurationError)
    async def _misconfigured(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error(f"Cannot serve {request.url.path}: {exc}")
        result = AgentResult.error(MSG_INTERNAL, "internal", [f"[Configuration error] {exc}"])
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.to_payload(),
        )

    @app.get("/health")
    def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "version": __version__}

    app.include_router(router, prefix="/api", tags=["agent"])
    return app


app = create_app()


def main() -> None:
    """Serve the API with uvicorn (host/port from COMPANY_INTEL_HOST / COMPANY_INTEL_PORT)."""
    import os

    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "company_intel.api:app",
        host=os.getenv("COMPANY_INTEL_HOST", "127.0.0.1"),
        port=int(os.getenv("COMPANY_INTEL_PORT", "3001")),
    )
