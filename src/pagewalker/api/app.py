"""FastAPI application exposing the navigation engine to renderers."""

from __future__ import annotations

from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field, field_validator
from starlette.responses import JSONResponse

from ..environment import EnvironmentContext
from ..errors import ContextComputationError
from ..navigation import NavigationEngine, NavigationResult
from ..settings import NavigatorSettings, build_engine
from ..world_graph import Location, Transition


class TransitionResource(BaseModel):
    """Outgoing transition as shown to the player."""

    label: str
    target: str
    description: str | None = None
    guard: dict[str, Any] | None = None
    available: bool = True

    @classmethod
    def from_transition(
        cls, transition: Transition, *, available: bool
    ) -> "TransitionResource":
        return cls(
            label=transition.label,
            target=transition.target,
            description=transition.description,
            guard=transition.guard.to_payload() if transition.guard else None,
            available=available,
        )


class LocationResource(BaseModel):
    id: str
    title: str
    template: str
    description: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)
    transitions: list[TransitionResource] = Field(default_factory=list)

    @classmethod
    def from_location(
        cls, location: Location, *, available: tuple[str, ...]
    ) -> "LocationResource":
        open_labels = set(available)
        return cls(
            id=location.id,
            title=location.title,
            template=location.template,
            description=location.description,
            metadata=dict(location.metadata),
            transitions=[
                TransitionResource.from_transition(
                    transition, available=transition.label in open_labels
                )
                for transition in location.transitions
            ],
        )


class EnvironmentResource(BaseModel):
    season: str
    weather: str
    time_of_day: str
    twilight: bool = False
    temperature: float
    events: list[str] = Field(default_factory=list)
    window: int = Field(..., ge=0)

    @classmethod
    def from_context(cls, context: EnvironmentContext) -> "EnvironmentResource":
        return cls.model_validate(context.to_payload())


class RejectionResource(BaseModel):
    reason: Literal["unknown_transition", "guard_rejected"]
    label: str
    message: str


class NavigationResponse(BaseModel):
    """Everything a renderer needs to draw the current page."""

    session_id: str
    location: LocationResource
    environment: EnvironmentResource
    rejected: RejectionResource | None = None
    notice: str | None = None

    @classmethod
    def from_result(cls, result: NavigationResult) -> "NavigationResponse":
        rejected = None
        if result.rejected is not None:
            rejected = RejectionResource(
                reason=result.rejected.reason.value,
                label=result.rejected.label,
                message=result.rejected.message,
            )
        return cls(
            session_id=result.session_id,
            location=LocationResource.from_location(
                result.location, available=result.available
            ),
            environment=EnvironmentResource.from_context(result.environment),
            rejected=rejected,
            notice=result.notice,
        )


class ActionRequest(BaseModel):
    label: str

    @field_validator("label")
    @classmethod
    def _validate_label(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("label must be a non-empty string")
        return stripped


class LoadWarningResource(BaseModel):
    kind: Literal["unreachable", "dead_end"]
    location_id: str
    message: str


class WorldSummaryResponse(BaseModel):
    start: str
    locations: list[str] = Field(default_factory=list)
    warnings: list[LoadWarningResource] = Field(default_factory=list)


def _require_session_id(session_id: str) -> str:
    trimmed = session_id.strip()
    if not trimmed:
        raise HTTPException(status_code=422, detail="Session identifier must be provided.")
    return trimmed


def create_app(
    engine: NavigationEngine | None = None,
    *,
    settings: NavigatorSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing ``view``/``act`` for session identifiers.

    Session identifiers travel in the path; cookie handling and page
    rendering belong to whatever sits in front of this app.
    """

    resolved_engine = engine if engine is not None else build_engine(settings)

    app = FastAPI(title="pagewalker", version="0.1.0")
    app.state.engine = resolved_engine

    @app.exception_handler(ContextComputationError)
    async def _context_failure(
        request: Request, exc: ContextComputationError
    ) -> JSONResponse:
        del request
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "retryable": True},
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/world", response_model=WorldSummaryResponse)
    def world_summary() -> WorldSummaryResponse:
        world = resolved_engine.world
        return WorldSummaryResponse(
            start=world.start,
            locations=list(world.location_ids),
            warnings=[
                LoadWarningResource(
                    kind=warning.kind,
                    location_id=warning.location_id,
                    message=warning.message,
                )
                for warning in world.warnings
            ],
        )

    @app.get("/sessions/{session_id}", response_model=NavigationResponse)
    def view_session(session_id: str) -> NavigationResponse:
        key = _require_session_id(session_id)
        return NavigationResponse.from_result(resolved_engine.view(key))

    @app.post("/sessions/{session_id}/actions", response_model=NavigationResponse)
    def submit_action(session_id: str, action: ActionRequest) -> NavigationResponse:
        return NavigationResponse.from_result(
            resolved_engine.act(_require_session_id(session_id), action.label)
        )

    return app


__all__ = [
    "ActionRequest",
    "EnvironmentResource",
    "LocationResource",
    "NavigationResponse",
    "RejectionResource",
    "TransitionResource",
    "WorldSummaryResponse",
    "create_app",
]
