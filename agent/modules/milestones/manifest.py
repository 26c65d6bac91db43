"""Milestone tracker module manifest — tool definitions."""

from shared.schemas.tools import ModuleManifest, ToolDefinition, ToolParameter

_EDITORS = ["provider", "admin"]

_TASK_FIELDS = [
    ToolParameter(name="description", type="string", description="Task description.", required=False),
    ToolParameter(
        name="status", type="string",
        description="Task status. Progress follows: pending=0, in_progress=50, completed=100.",
        required=False,
        enum=["pending", "in_progress", "completed", "cancelled"],
    ),
    ToolParameter(name="due_date", type="string", description="Due date (YYYY-MM-DD).", required=False),
    ToolParameter(name="estimated_hours", type="number", description="Estimated effort in hours.", required=False),
    ToolParameter(name="actual_hours", type="number", description="Hours spent so far.", required=False),
]

_DECISION_PARAMS = [
    ToolParameter(name="task_id", type="string", description="UUID of a completed task."),
    ToolParameter(name="feedback", type="string", description="Optional note for the provider.", required=False),
]

MANIFEST = ModuleManifest(
    module_name="milestones",
    description=(
        "Milestone and task tracking for service bookings. Task changes "
        "recompute the owning milestone's totals, progress and status, and "
        "clients can approve, reject or request revisions on completed tasks."
    ),
    tools=[
        # ── Milestones ──────────────────────────────────────────────────
        ToolDefinition(
            name="milestones.create_milestone",
            description="Create a milestone for a booking. It starts pending at 0%.",
            parameters=[
                ToolParameter(name="booking_id", type="string", description="UUID of the owning booking."),
                ToolParameter(name="title", type="string", description="Milestone title."),
                ToolParameter(name="description", type="string", description="Milestone description.", required=False),
                ToolParameter(
                    name="priority", type="string", description="Priority (default: normal).",
                    required=False, enum=["low", "normal", "high", "urgent"],
                ),
                ToolParameter(
                    name="weight", type="number",
                    description="Relative weight in the booking's overall progress (default: 1).",
                    required=False,
                ),
                ToolParameter(name="due_date", type="string", description="Due date (YYYY-MM-DD).", required=False),
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.update_milestone",
            description=(
                "Edit a milestone directly. An explicit status is kept as given; "
                "completed_at is set for 'completed' and cleared otherwise."
            ),
            parameters=[
                ToolParameter(name="milestone_id", type="string", description="UUID of the milestone."),
                ToolParameter(name="title", type="string", description="New title.", required=False),
                ToolParameter(name="description", type="string", description="New description.", required=False),
                ToolParameter(
                    name="status", type="string", description="New status.", required=False,
                    enum=["pending", "in_progress", "completed", "on_hold", "cancelled"],
                ),
                ToolParameter(
                    name="priority", type="string", description="New priority.", required=False,
                    enum=["low", "normal", "high", "urgent"],
                ),
                ToolParameter(name="weight", type="number", description="New weight (> 0).", required=False),
                ToolParameter(
                    name="due_date", type="string",
                    description="New due date (YYYY-MM-DD), or empty string to clear.",
                    required=False,
                ),
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.delete_milestone",
            description="Delete a milestone together with its tasks and their approval history.",
            parameters=[
                ToolParameter(name="milestone_id", type="string", description="UUID of the milestone."),
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.get_milestone",
            description="Get one milestone with its tasks.",
            parameters=[
                ToolParameter(name="milestone_id", type="string", description="UUID of the milestone."),
            ],
        ),
        ToolDefinition(
            name="milestones.list_milestones",
            description="List a booking's milestones with nested tasks and the weighted overall progress.",
            parameters=[
                ToolParameter(name="booking_id", type="string", description="UUID of the booking."),
            ],
        ),
        # ── Tasks ───────────────────────────────────────────────────────
        ToolDefinition(
            name="milestones.create_task",
            description="Add a task to a milestone and recompute the milestone.",
            parameters=[
                ToolParameter(name="milestone_id", type="string", description="UUID of the milestone."),
                ToolParameter(name="title", type="string", description="Task title."),
                *_TASK_FIELDS,
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.update_task",
            description="Update task fields. A status change recomputes the milestone.",
            parameters=[
                ToolParameter(name="task_id", type="string", description="UUID of the task."),
                ToolParameter(name="title", type="string", description="New title.", required=False),
                *_TASK_FIELDS,
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.adjust_task_progress",
            description=(
                "Nudge a task's progress by a number of points (e.g. 25), capped to 0-100. "
                "The task status follows the new progress and the milestone is recomputed."
            ),
            parameters=[
                ToolParameter(name="task_id", type="string", description="UUID of the task."),
                ToolParameter(name="delta", type="integer", description="Points to add (negative to subtract)."),
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.delete_task",
            description="Delete a task and recompute its milestone.",
            parameters=[
                ToolParameter(name="task_id", type="string", description="UUID of the task."),
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.list_tasks",
            description="List a milestone's tasks, oldest first, with overdue flag and client decision.",
            parameters=[
                ToolParameter(name="milestone_id", type="string", description="UUID of the milestone."),
            ],
        ),
        # ── Client approvals ────────────────────────────────────────────
        ToolDefinition(
            name="milestones.approve_task",
            description="Client approves a completed task.",
            parameters=_DECISION_PARAMS,
            allowed_roles=["client"],
        ),
        ToolDefinition(
            name="milestones.reject_task",
            description="Client rejects a completed task; it goes back to pending.",
            parameters=_DECISION_PARAMS,
            allowed_roles=["client"],
        ),
        ToolDefinition(
            name="milestones.request_revision",
            description="Client asks for changes on a completed task; it goes back to in_progress.",
            parameters=_DECISION_PARAMS,
            allowed_roles=["client"],
        ),
        ToolDefinition(
            name="milestones.get_approval_history",
            description="All client decisions recorded for a task, oldest first.",
            parameters=[
                ToolParameter(name="task_id", type="string", description="UUID of the task."),
            ],
        ),
        # ── Time tracking ───────────────────────────────────────────────
        ToolDefinition(
            name="milestones.start_time_tracking",
            description=(
                "Start a timer on a task for the calling user. Any timer that user "
                "already has running is stopped and booked first."
            ),
            parameters=[
                ToolParameter(name="task_id", type="string", description="UUID of the task."),
                ToolParameter(name="description", type="string", description="What is being worked on.", required=False),
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.stop_time_tracking",
            description="Stop a running timer. The task's actual_hours is re-derived from its entries.",
            parameters=[
                ToolParameter(name="entry_id", type="string", description="UUID of the running time entry."),
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.log_time",
            description="Record time already spent on a task, ending now. Updates actual_hours.",
            parameters=[
                ToolParameter(name="task_id", type="string", description="UUID of the task."),
                ToolParameter(name="hours", type="number", description="Hours spent (e.g. 1.5)."),
                ToolParameter(name="description", type="string", description="What the time was spent on.", required=False),
            ],
            allowed_roles=_EDITORS,
        ),
        ToolDefinition(
            name="milestones.get_active_time_entry",
            description="The calling user's running timer, if any.",
            parameters=[],
        ),
        ToolDefinition(
            name="milestones.list_time_entries",
            description="All time entries of a task, oldest first, with the total minutes.",
            parameters=[
                ToolParameter(name="task_id", type="string", description="UUID of the task."),
            ],
        ),
        # ── Progress ────────────────────────────────────────────────────
        ToolDefinition(
            name="milestones.refresh_progress",
            description="Recompute a milestone's totals, progress and status from its tasks.",
            parameters=[
                ToolParameter(name="milestone_id", type="string", description="UUID of the milestone."),
            ],
        ),
        ToolDefinition(
            name="milestones.refresh_booking",
            description="Recompute every milestone of a booking and return the refreshed list.",
            parameters=[
                ToolParameter(name="booking_id", type="string", description="UUID of the booking."),
            ],
        ),
        ToolDefinition(
            name="milestones.get_progress_summary",
            description=(
                "Progress dashboard for a booking: overall progress, milestone and task "
                "counts by status, overdue tasks, and estimated/actual hours."
            ),
            parameters=[
                ToolParameter(name="booking_id", type="string", description="UUID of the booking."),
            ],
        ),
    ],
)
