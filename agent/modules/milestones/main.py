"""Milestone tracker module — FastAPI service for milestone and task progress."""

from __future__ import annotations

import structlog
from fastapi import Depends, FastAPI

from modules.milestones.manifest import MANIFEST
from modules.milestones.sync import BookingProgressSync
from modules.milestones.tools import MilestoneTrackerTools
from shared.auth import require_service_auth, resolve_actor
from shared.config import get_settings
from shared.database import get_session_factory
from shared.errors import TrackerError
from shared.schemas.health import HealthResponse
from shared.schemas.tools import ModuleManifest, ToolCall, ToolResult

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()
app = FastAPI(title="Milestone Tracker Module", version="1.0.0")

tools: MilestoneTrackerTools | None = None


@app.on_event("startup")
async def startup():
    global tools
    session_factory = get_session_factory()
    tools = MilestoneTrackerTools(session_factory, sync=BookingProgressSync())
    logger.info("milestones_module_ready")


# Read-only tools; everything else needs a resolved actor
_READ_TOOLS = {
    "get_milestone", "list_milestones", "list_tasks",
    "get_approval_history", "get_progress_summary", "list_time_entries",
}

# Allowlist of valid tool methods (must match manifest tool names)
_ALLOWED_TOOLS = _READ_TOOLS | {
    "create_milestone", "update_milestone", "delete_milestone",
    "create_task", "update_task", "adjust_task_progress", "delete_task",
    "approve_task", "reject_task", "request_revision",
    "start_time_tracking", "stop_time_tracking", "log_time", "get_active_time_entry",
    "refresh_progress", "refresh_booking",
}


@app.get("/manifest", response_model=ModuleManifest)
async def manifest(_=Depends(require_service_auth)):
    return MANIFEST


@app.post("/execute", response_model=ToolResult)
async def execute(call: ToolCall, _=Depends(require_service_auth)):
    if tools is None:
        return ToolResult(tool_name=call.tool_name, success=False, error="Module not ready")

    tool_name = call.tool_name.split(".")[-1]
    if tool_name not in _ALLOWED_TOOLS:
        return ToolResult(
            tool_name=call.tool_name,
            success=False,
            error=f"Unknown tool: {call.tool_name}",
            error_code="unknown_tool",
        )

    try:
        # Identity comes from the call envelope, never from the arguments
        args = {k: v for k, v in call.arguments.items() if k != "actor"}
        if tool_name not in _READ_TOOLS:
            args["actor"] = resolve_actor(call.user_id, call.user_role)

        handler = getattr(tools, tool_name)
        result = await handler(**args)
        return ToolResult(tool_name=call.tool_name, success=True, result=result)
    except TrackerError as e:
        logger.warning(
            "tool_execution_rejected",
            tool=call.tool_name,
            error_code=e.code,
            error=str(e),
        )
        return ToolResult(tool_name=call.tool_name, success=False, error=str(e), error_code=e.code)
    except Exception as e:
        logger.error("tool_execution_error", tool=call.tool_name, error=str(e), exc_info=True)
        return ToolResult(
            tool_name=call.tool_name, success=False, error=str(e), error_code="internal_error"
        )


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        service="milestones",
        booking_sync=bool(get_settings().booking_progress_url),
    )
