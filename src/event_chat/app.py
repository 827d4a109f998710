import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from .agent import ChatAgent
from .config import Settings
from .event_bus import EventBus, get_event_bus
from .storage import FormSubmissionRecorder, open_stores
from .tools import build_default_registry
from .ui_bridge import UILogHandler, WebSocketBridge
from .upstream import OpenRouterClient

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "event_chat"


def create_agent(settings: Settings, bus: EventBus, preferences, upstream=None) -> ChatAgent:
    """Create the chat agent with the built-in tool catalogue."""
    upstream = upstream or OpenRouterClient(
        base_url=settings.base_url,
        app_url=settings.app_url,
        app_title=settings.app_title,
    )
    return ChatAgent(
        upstream,
        build_default_registry(),
        bus=bus,
        preferences=preferences,
        model=settings.model,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        agent_id="main",
    )


async def handle_websocket_session(websocket: WebSocket, state) -> None:
    """Relay events for one connected client until it disconnects."""
    bridge = WebSocketBridge(state.bus, websocket, preferences=state.preferences)
    log_handler = UILogHandler(bridge)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.addHandler(log_handler)
    bridge.attach()
    await bridge._send_state_update()

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message_data = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("SYSTEM: Ignoring malformed client message")
                continue
            if not isinstance(message_data, dict):
                logger.warning("SYSTEM: Ignoring non-object client message")
                continue
            await bridge.handle_client_message(message_data)
    except WebSocketDisconnect:
        logger.info("SYSTEM: Client disconnected")
    except Exception as e:
        logger.error(f"ERROR: WebSocket error: {e}")
    finally:
        package_logger.removeHandler(log_handler)
        bridge.close()


def create_app(
    settings: Optional[Settings] = None,
    bus: Optional[EventBus] = None,
    upstream=None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    bus = bus or get_event_bus()
    preferences, submissions = open_stores(settings.data_dir)

    agent = create_agent(settings, bus, preferences, upstream=upstream)
    recorder = FormSubmissionRecorder(submissions, bus)
    agent.attach()
    recorder.attach()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        agent.close()
        recorder.close()
        await bus.join()
        if hasattr(agent.upstream, "aclose"):
            await agent.upstream.aclose()

    app = FastAPI(title=settings.app_title, lifespan=lifespan)
    app.state.settings = settings
    app.state.bus = bus
    app.state.agent = agent
    app.state.preferences = preferences
    app.state.submissions = submissions

    @app.get("/health")
    async def health():
        return {"status": "ok", "tools": agent.registry.get_tool_names()}

    @app.get("/api/tools")
    async def list_tools():
        return agent.registry.get_schemas()

    @app.get("/api/submissions")
    async def list_submissions():
        return submissions.list()

    @app.delete("/api/submissions/{submission_id}")
    async def delete_submission(submission_id: str):
        if not submissions.delete(submission_id):
            raise HTTPException(status_code=404, detail="Submission not found")
        return {"deleted": submission_id}

    @app.delete("/api/submissions")
    async def clear_submissions():
        submissions.clear()
        return {"cleared": True}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        await handle_websocket_session(websocket, app.state)

    return app
