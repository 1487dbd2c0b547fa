"""
FlowCanvas Server - FastAPI Application

It provides:
- REST API for the workflow list and the open canvas
- Input events and store actions posted by a front end
- Import, export and validation of workflows
- WebSocket endpoint for real-time updates
- Deferred auto-save from a background task
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from flowcanvas.actions import parse_action
from flowcanvas.events import InputEvent, parse_events
from flowcanvas.models import NodeType, Position
from flowcanvas.validation import InvalidWorkflowError, export_filename

from .config import Settings, load_settings
from .session import CanvasSession, WorkflowNotFoundError
from .storage import JsonFileStorage, WorkflowStorage
from .websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


# --- Request models ---

class EventBatch(BaseModel):
    events: list[InputEvent]
    # Canvas element origin in client coordinates, if it moved
    origin: Optional[Position] = None


class RenameRequest(BaseModel):
    title: str


class CommandRequest(BaseModel):
    command: str  # zoom_in, zoom_out, reset_view, select_all, add_node, ...
    node_id: Optional[str] = None
    x: float = 0.0
    y: float = 0.0
    node_type: str = NodeType.TASK.value


def _run_command(session: CanvasSession, request: CommandRequest) -> bool:
    """Toolbar and context-menu operations of the canvas."""
    controller = session.controller
    if request.command == "zoom_in":
        controller.zoom_in()
    elif request.command == "zoom_out":
        controller.zoom_out()
    elif request.command == "reset_view":
        controller.reset_view()
    elif request.command == "select_all":
        controller.select_all()
    elif request.command == "cancel":
        controller.cancel()
    elif request.command == "add_node":
        controller.add_node_at(Position(x=request.x, y=request.y), node_type=request.node_type)
    elif request.command == "clear_canvas":
        return controller.request_clear_canvas()
    elif request.command == "delete_node":
        return controller.request_delete_node(request.node_id or "")
    elif request.command == "resize_node":
        return controller.enable_resize(request.node_id or "")
    elif request.command == "delete_connection":
        return controller.delete_selected_connection()
    else:
        raise ValueError(f"Unknown command: {request.command}")
    return True


def create_app(settings: Optional[Settings] = None,
               storage: Optional[WorkflowStorage] = None) -> FastAPI:
    """Build the application around one canvas session."""
    settings = settings or load_settings()
    storage = storage if storage is not None else JsonFileStorage(settings.data_dir)
    session = CanvasSession(storage)
    ws_manager = WebSocketManager()

    # --- Async change notification ---
    # Bridge between sync session callbacks and async broadcasts/saves
    change_event = asyncio.Event()

    def on_canvas_change():
        """Callback for canvas changes - sets event for async handler."""
        change_event.set()

    async def publish():
        await ws_manager.notify_canvas_updated(
            session.workflow.id,
            session.controller.scene().model_dump(mode="json"),
        )

    async def change_broadcaster():
        """Background task that broadcasts changes and saves the workflow."""
        while True:
            await change_event.wait()
            change_event.clear()
            try:
                await publish()
                await asyncio.to_thread(session.flush)
            except Exception:
                logger.exception("Change broadcast failed")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan handler for startup/shutdown tasks."""
        session.on_change(on_canvas_change)
        broadcaster_task = asyncio.create_task(change_broadcaster())
        logger.info("Serving workflows from %s", settings.data_dir)

        yield

        broadcaster_task.cancel()
        try:
            await broadcaster_task
        except asyncio.CancelledError:
            pass
        session.flush()

    app = FastAPI(
        title="FlowCanvas API",
        description="Backend API for the workflow canvas",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.session = session
    app.state.ws_manager = ws_manager
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "connections": ws_manager.connection_count}

    # --- Workflow list ---

    @app.get("/api/workflows")
    async def list_workflows():
        """List stored workflows."""
        return {
            "success": True,
            "workflows": [s.to_json_dict() for s in session.list_workflows()],
        }

    @app.post("/api/workflows")
    async def new_workflow(title: str = Query(default="New Workflow")):
        """Create a new empty workflow and open it."""
        try:
            workflow = session.new_workflow(title=title)
        except (OSError, ValueError) as e:
            raise HTTPException(status_code=500, detail=f"Failed to create workflow: {e}")
        return {"success": True, "workflow": workflow.to_json_dict()}

    @app.delete("/api/workflows/{workflow_id}")
    async def delete_workflow(workflow_id: str):
        """Delete a stored workflow."""
        if session.delete_workflow(workflow_id):
            return {"success": True}
        raise HTTPException(status_code=404, detail="Workflow not found")

    @app.post("/api/workflows/{workflow_id}/open")
    async def open_workflow(workflow_id: str):
        """Open a stored workflow on the canvas."""
        try:
            workflow = session.open_workflow(workflow_id)
        except WorkflowNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"success": True, "workflow": workflow.to_json_dict()}

    # --- Canvas State ---

    @app.get("/api/canvas")
    async def get_canvas():
        """Get the current canvas state and scene."""
        return session.get_state()

    @app.patch("/api/canvas")
    async def rename_canvas(request: RenameRequest):
        """Rename the open workflow."""
        workflow = session.rename(request.title)
        return {"success": True, "workflow": workflow.to_json_dict()}

    @app.post("/api/canvas/events")
    async def post_events(batch: EventBatch):
        """Process a batch of input events in order."""
        if batch.origin is not None:
            session.controller.set_canvas_origin(batch.origin.x, batch.origin.y)
        session.handle_events(batch.events)
        return session.get_state()

    @app.post("/api/canvas/actions")
    async def post_action(data: dict = Body(...)):
        """Apply one store action (property editors)."""
        try:
            action = parse_action(data)
        except ValidationError as e:
            # Inputs are left out; they may be non-finite and not JSON-encodable
            raise HTTPException(status_code=422,
                                detail=e.errors(include_url=False, include_input=False))
        session.dispatch(action)
        return session.get_state()

    @app.post("/api/canvas/commands")
    async def post_command(request: CommandRequest):
        """Run a toolbar or context-menu operation."""
        try:
            done = _run_command(session, request)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": done, **session.get_state()}

    # --- Import / Export / Validation ---

    @app.get("/api/canvas/export")
    async def export_canvas():
        """Download the open workflow as JSON."""
        filename = export_filename(session.workflow)
        return Response(
            content=session.export_text(),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/api/canvas/import")
    async def import_canvas(request: Request):
        """Replace the open workflow with posted workflow JSON."""
        text = (await request.body()).decode("utf-8", errors="replace")
        try:
            workflow = session.import_text(text)
        except InvalidWorkflowError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "workflow": workflow.to_json_dict()}

    @app.get("/api/canvas/validate")
    async def validate_canvas():
        """
        Validate the open workflow for structural issues.

        Returns a list of issues (errors, warnings, info) and a summary.
        """
        return {"success": True, **session.validate()}

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for real-time updates.

        Clients send input events as {"type": "events", "events": [...]} and
        receive canvas_updated broadcasts. "ping" is answered with a pong.
        """
        await ws_manager.connect(websocket)

        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await ws_manager.send(websocket, {"type": "pong"})
                    continue
                await _handle_ws_message(websocket, data)
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)
        except Exception:
            logger.exception("WebSocket handler failed")
            await ws_manager.disconnect(websocket)

    async def _handle_ws_message(websocket: WebSocket, data: str):
        try:
            message = json.loads(data)
            kind = message.get("type")
            if kind == "ping":
                await ws_manager.send(websocket, {"type": "pong"})
                return
            if kind == "events":
                origin = message.get("origin")
                if origin is not None:
                    point = Position.model_validate(origin)
                    session.controller.set_canvas_origin(point.x, point.y)
                session.handle_events(parse_events(message.get("events", [])))
            elif kind == "action":
                session.dispatch(parse_action(message.get("action", {})))
            else:
                raise ValueError(f"Unknown message type: {kind!r}")
        except (ValueError, AttributeError) as e:
            # pydantic's ValidationError is a ValueError
            await ws_manager.send(websocket, {"type": "error", "message": str(e)})
            return
        await publish()

    return app


app = create_app()


# --- Run with uvicorn ---

if __name__ == "__main__":
    import uvicorn
    _settings = load_settings()
    logging.basicConfig(level=_settings.log_level)
    uvicorn.run(app, host=_settings.host, port=_settings.port)
