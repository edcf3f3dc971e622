from __future__ import annotations

from collections.abc import Sequence

from .store.types import Activity, SessionState
from .store.utils import now


def _section(lines: list[str], title: str, items: Sequence[str], prefix: str = "- ") -> None:
    if not items:
        return
    lines.append(title)
    lines.extend(f"{prefix}{item}" for item in items)
    lines.append("")


def render_handoff(
    project_name: str, state: SessionState, activities: Sequence[Activity]
) -> str:
    """Markdown summary a fresh session can pick the work up from."""

    lines = [f"# Session Handoff - {project_name}", f"*Generated: {now():%Y-%m-%d %H:%M:%S}*", ""]

    task = state.current_task
    if task is not None:
        lines.extend(
            [
                "## Current Task",
                f"**Status:** {task.status}",
                f"**Description:** {task.description}",
                "",
            ]
        )
        _section(lines, "**Next Steps:**", task.next_steps)
        _section(lines, "**Files Modified:**", task.files_modified)
        _section(lines, "**Blockers:**", task.blockers, prefix="- ⚠️ ")

    _section(
        lines, "## Pending Decisions", [decision.question for decision in state.decisions_pending]
    )

    lines.append("## Recent Activity")
    lines.append("See Activity logs for details. Key recent actions:")
    for activity in activities:
        when = f"{activity.timestamp:%H:%M}" if activity.timestamp else "--:--"
        lines.append(f"- [{when}] {activity.action}: {activity.description}")
    return "\n".join(lines) + "\n"
