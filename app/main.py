"""
FastAPI Application Entry Point.

MeetGraph API: events, attendance, meetings, profiles and the
natural-language contact query.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from app.config import get_settings
from app.services import Services
from meetgraph.knowledge.directory import DirectoryError, NetworkDirectory, NotFoundError
from meetgraph.knowledge.graph_store import GraphStoreError
from meetgraph.knowledge.schemas import Event, MetContact, Person
from meetgraph.query.errors import InvalidQueryError, QueryFailedError
from meetgraph.query.planner import QueryEngine
from meetgraph.query.schemas import AIQueryRequest, AIQueryResponse
from meetgraph.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

API_VERSION = "0.1.0"


# ============================================================================
# Request Bodies
# ============================================================================

class EventCreate(BaseModel):
    name: str = Field(..., min_length=1)
    date: datetime | None = None
    location: str = ""
    capacity: int | None = Field(default=None, ge=0)


class JoinRequest(BaseModel):
    event_id: str
    name: str
    email: str = ""
    company: str = ""
    job_title: str = ""
    bio: str = ""
    interests: str = ""


class MeetRequest(BaseModel):
    user_a_id: str
    user_b_id: str
    note: str = ""
    event_id: str | None = None


class ProfileUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    company: str | None = None
    job_title: str | None = None
    bio: str | None = None
    interests: str | None = None


# ============================================================================
# Dependencies
# ============================================================================

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_engine(services: Services = Depends(get_services)) -> QueryEngine:
    return services.engine


def get_directory(services: Services = Depends(get_services)) -> NetworkDirectory:
    return services.directory


def _directory_http_error(e: DirectoryError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# ============================================================================
# Application
# ============================================================================

def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the API.

    Args:
        services: Pre-built services (tests); when None they are opened from
            settings at startup and closed at shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        settings = services.settings if services is not None else get_settings()
        setup_logging(settings.log_level)
        logger.info("Starting MeetGraph API...")

        owned = services is None
        app.state.services = services or await Services.open(settings)
        logger.info(f"LLM Backend: {app.state.services.settings.llm_backend.value}")
        logger.info(f"Graph Backend: {app.state.services.settings.graph_backend.value}")
        yield
        logger.info("Shutting down MeetGraph API...")
        if owned:
            await app.state.services.close()

    app = FastAPI(
        title="MeetGraph",
        description="Hybrid semantic and graph search over who you met at events",
        version=API_VERSION,
        lifespan=lifespan,
    )

    # CORS middleware for frontend integration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "version": API_VERSION}

    @app.get("/config")
    async def get_config(services: Services = Depends(get_services)) -> dict[str, Any]:
        """Get current configuration (non-sensitive values only)."""
        settings = services.settings
        return {
            "llm_backend": settings.llm_backend.value,
            "embedding_backend": settings.embedding_backend.value,
            "embedding_model": settings.embedding_model,
            "graph_backend": settings.graph_backend.value,
            "rag_top_k": settings.rag_top_k,
            "rag_similarity_threshold": settings.rag_similarity_threshold,
            "cypher_result_limit": settings.cypher_result_limit,
        }

    # ------------------------------------------------------------------
    # Natural-language query
    # ------------------------------------------------------------------

    @app.post("/ai/query", response_model=AIQueryResponse)
    async def ai_query(
        body: AIQueryRequest,
        engine: QueryEngine = Depends(get_engine),
    ) -> AIQueryResponse:
        """
        Answer "who did I meet / who should I know" questions.

        Mode ``auto`` (default) picks graph traversal or semantic search and
        falls back between them; ``rag`` and ``cypher`` force one path.
        """
        try:
            return await engine.handle(body)
        except InvalidQueryError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except QueryFailedError as e:
            logger.error(f"AI query failed: {e.__cause__}")
            raise HTTPException(status_code=500, detail=QueryFailedError.MESSAGE)

    # ------------------------------------------------------------------
    # Events and attendance
    # ------------------------------------------------------------------

    @app.post("/events", response_model=Event)
    async def create_event(
        body: EventCreate,
        directory: NetworkDirectory = Depends(get_directory),
    ) -> Event:
        """Create an event. Its ID is generated here and never changes."""
        try:
            return await directory.create_event(Event(**body.model_dump()))
        except GraphStoreError as e:
            logger.error(f"Event creation failed: {e}")
            raise HTTPException(status_code=500, detail="Event creation failed")

    @app.get("/events/{event_id}", response_model=Event)
    async def get_event(
        event_id: str,
        directory: NetworkDirectory = Depends(get_directory),
    ) -> Event:
        try:
            return await directory.get_event(event_id)
        except DirectoryError as e:
            raise _directory_http_error(e)

    @app.get("/events/{event_id}/attendees")
    async def get_attendees(
        event_id: str,
        directory: NetworkDirectory = Depends(get_directory),
    ) -> dict[str, Any]:
        try:
            attendees = await directory.get_attendees(event_id)
        except DirectoryError as e:
            raise _directory_http_error(e)
        return {
            "event_id": event_id,
            "count": len(attendees),
            "attendees": [p.model_dump(mode="json", by_alias=True, exclude={"events"}) for p in attendees],
        }

    @app.post("/join")
    async def join_event(
        body: JoinRequest,
        directory: NetworkDirectory = Depends(get_directory),
    ) -> dict[str, Any]:
        """
        Join an event.

        Creates the profile, or updates the one with this email. Joining the
        same event again is a no-op for attendance.
        """
        try:
            result = await directory.join_event(**body.model_dump())
        except DirectoryError as e:
            raise _directory_http_error(e)
        except GraphStoreError as e:
            logger.error(f"Join failed: {e}")
            raise HTTPException(status_code=500, detail="Join failed")

        return {
            "status": "success",
            "created": result.created,
            "user": result.person.model_dump(mode="json", by_alias=True, exclude={"events"}),
            "event": result.event.model_dump(mode="json"),
            "joined_at": result.attendance.joined_at.isoformat(),
        }

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    @app.post("/met")
    async def record_meeting(
        body: MeetRequest,
        directory: NetworkDirectory = Depends(get_directory),
    ) -> dict[str, Any]:
        """Record that two people met; stored in both directions."""
        try:
            forward, _ = await directory.record_meeting(
                body.user_a_id,
                body.user_b_id,
                note=body.note,
                event_id=body.event_id,
            )
        except DirectoryError as e:
            raise _directory_http_error(e)
        except GraphStoreError as e:
            logger.error(f"Recording meeting failed: {e}")
            raise HTTPException(status_code=500, detail="Recording meeting failed")

        return {
            "status": "success",
            "meeting": forward.model_dump(mode="json"),
        }

    @app.get("/met/{user_id}", response_model=list[MetContact])
    async def get_meetings(
        user_id: str,
        directory: NetworkDirectory = Depends(get_directory),
    ) -> list[MetContact]:
        """Everyone this person has met, newest first."""
        try:
            return await directory.get_meetings(user_id)
        except DirectoryError as e:
            raise _directory_http_error(e)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    @app.get("/profile/{user_id}", response_model=Person)
    async def get_profile(
        user_id: str,
        directory: NetworkDirectory = Depends(get_directory),
    ) -> Person:
        try:
            return await directory.get_profile(user_id)
        except DirectoryError as e:
            raise _directory_http_error(e)

    @app.put("/profile/{user_id}", response_model=Person)
    async def update_profile(
        user_id: str,
        body: ProfileUpdate,
        directory: NetworkDirectory = Depends(get_directory),
    ) -> Person:
        """Edit a profile; its embedding is regenerated."""
        try:
            return await directory.update_profile(user_id, **body.model_dump(exclude_none=True))
        except DirectoryError as e:
            raise _directory_http_error(e)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
