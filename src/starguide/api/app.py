"""FastAPI application exposing the character deployment endpoints."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from fastapi import Depends, FastAPI, Header, Query
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, Field
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..auth import (
    Actor,
    IdentityProvider,
    Role,
    StaticTokenIdentityProvider,
    parse_bearer_token,
    require_role,
)
from ..deployment import DeploymentOrchestrator, build_orchestrator
from ..errors import RateLimited, StarguideError, ValidationError
from ..settings import StarguideSettings

logger = logging.getLogger(__name__)


class ApproveEditRequest(BaseModel):
    """Body of the deployment trigger."""

    model_config = ConfigDict(populate_by_name=True)

    edit_id: int = Field(..., alias="editId", strict=True)


class ApproveEditResponse(BaseModel):
    """Successful deployment report."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    commit_sha: str = Field(..., alias="commitSha")
    message: str
    tier_edits_note: str | None = Field(None, alias="tierEditsNote")
    status_recorded: bool = Field(True, alias="statusRecorded")
    reconciliation_note: str | None = Field(None, alias="reconciliationNote")


class CharacterResponse(BaseModel):
    """Current canonical record for one character."""

    success: bool = True
    character: dict[str, Any]
    revision: str


def _error_response(exc: StarguideError) -> JSONResponse:
    content: dict[str, Any] = {
        "success": False,
        "error": exc.public_message,
        "kind": exc.kind.value,
    }
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimited):
        content["retryAfter"] = exc.retry_after
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(content=content, status_code=exc.status_code, headers=headers)


def _describe_validation_errors(errors: list[Mapping[str, Any]]) -> str:
    fields = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        fields.append(".".join(location) or "body")
    return "Invalid request: " + ", ".join(sorted(set(fields))) + " missing or invalid"


def create_app(
    orchestrator: DeploymentOrchestrator | None = None,
    *,
    settings: StarguideSettings | None = None,
    identity_provider: IdentityProvider | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the deployment endpoints.

    When ``orchestrator`` is omitted a fresh one is wired from ``settings``
    for every request, so no repository client outlives a request.
    """

    resolved_settings = settings or StarguideSettings.from_env()
    identity = identity_provider or StaticTokenIdentityProvider(
        resolved_settings.access_tokens
    )

    def orchestrator_factory() -> DeploymentOrchestrator:
        if orchestrator is not None:
            return orchestrator
        return build_orchestrator(resolved_settings)

    def _current_actor(authorization: str | None = Header(None)) -> Actor:
        return identity.authenticate(parse_bearer_token(authorization))

    tags_metadata = [
        {
            "name": "Deployment",
            "description": (
                "Deploy approved character edits by committing the regenerated "
                "character file to the main branch."
            ),
        },
        {
            "name": "Characters",
            "description": "Read the current canonical character records.",
        },
    ]

    app = FastAPI(
        title="Starguide Character Admin API",
        version="0.1.0",
        description=(
            "Admin endpoints for reviewing and deploying community edits to "
            "the character catalog."
        ),
        openapi_tags=tags_metadata,
    )

    @app.exception_handler(StarguideError)
    async def _handle_classified_error(
        request: Request, exc: StarguideError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        message = _describe_validation_errors(list(exc.errors()))
        return _error_response(ValidationError(message))

    @app.post(
        "/api/approve-edit",
        response_model=ApproveEditResponse,
        response_model_exclude_none=True,
        tags=["Deployment"],
    )
    def approve_edit(
        body: ApproveEditRequest,
        actor: Actor = Depends(_current_actor),
    ) -> ApproveEditResponse:
        require_role(actor, Role.ADMIN)
        try:
            result = orchestrator_factory().deploy(body.edit_id, actor)
        except StarguideError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error deploying edit %s", body.edit_id)
            raise StarguideError(
                f"Unexpected error deploying edit {body.edit_id}: {exc}",
                public_message="Failed to commit changes",
            ) from exc

        return ApproveEditResponse(
            commit_sha=result.revision,
            message=result.message,
            tier_edits_note=result.tier_edits_warning,
            status_recorded=result.status_recorded,
            reconciliation_note=result.reconciliation_warning,
        )

    @app.get(
        "/api/get-character",
        response_model=CharacterResponse,
        tags=["Characters"],
    )
    def get_character(
        character_id: str | None = Query(None, alias="id"),
        actor: Actor = Depends(_current_actor),
    ) -> CharacterResponse:
        require_role(actor, Role.ADMIN, Role.CONTRIBUTOR)
        if not character_id:
            raise ValidationError("Character ID required")
        try:
            snapshot = orchestrator_factory().read_character(character_id)
        except StarguideError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error reading character %s", character_id)
            raise StarguideError(
                f"Unexpected error reading character {character_id}: {exc}",
                public_message="Failed to fetch character",
            ) from exc

        return CharacterResponse(
            character=dict(snapshot.record), revision=snapshot.revision
        )

    return app


__all__ = [
    "ApproveEditRequest",
    "ApproveEditResponse",
    "CharacterResponse",
    "create_app",
]
