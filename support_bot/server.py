"""
FastAPI server exposing the message pipeline and usage statistics over HTTP.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .analytics import collect_period_stats, collect_stats
from .errors import PersistenceError
from .schemas import FaqEntry, InboundMessage, Resolution
from .services import BotServices, build_services

logger = logging.getLogger(__name__)


class MessageRequest(BaseModel):
    """A text message submitted over HTTP."""
    identity: str = Field(..., min_length=1, description="Caller identity")
    text: str = Field(..., description="Message text")
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


def get_services(request: Request) -> BotServices:
    return request.app.state.services


def create_app(services: Optional[BotServices] = None) -> FastAPI:
    """
    Create the HTTP application.

    Args:
        services: Prebuilt services; built from the environment when omitted

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.services is None
        if owned:
            app.state.services = build_services()
        await app.state.services.start()
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()

    app = FastAPI(
        title="Support Bot",
        description="Customer-support message resolution with FAQ matching and ticket escalation",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        llm = get_services(request).llm
        return {"status": "healthy", "version": "1.0.0", "mode": "mock" if llm.is_mock else "real"}

    @app.get("/api/stats")
    async def get_stats(request: Request, start: Optional[date] = None, end: Optional[date] = None):
        """Overall statistics, or statistics for a date range when start and end are given."""
        database = get_services(request).database
        try:
            if start is not None or end is not None:
                if start is None or end is None:
                    raise HTTPException(status_code=422, detail="Both start and end are required")
                return await collect_period_stats(database, start, end)
            return await collect_stats(database)
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=f"Error: {str(e)}")

    @app.get("/api/faqs", response_model=list[FaqEntry])
    async def list_faqs(request: Request):
        """Current FAQ corpus."""
        try:
            return await get_services(request).repository.list_faqs()
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=f"Error: {str(e)}")

    @app.post("/api/messages", response_model=Resolution)
    async def post_message(payload: MessageRequest, request: Request):
        """Resolve a message exactly as the chat bot would."""
        inbound = InboundMessage(**payload.model_dump())
        return await get_services(request).resolver.resolve(inbound)

    return app


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the server using uvicorn."""
    import uvicorn

    from .config import get_settings
    from .utils import setup_logging

    setup_logging(get_settings().log_level)
    logger.info("Starting server at http://%s:%s", host, port)
    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    import sys
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 8000
    run_server(port=port)
