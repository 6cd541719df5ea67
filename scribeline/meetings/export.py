from __future__ import annotations

import logging
from pathlib import Path

from scribeline.internal_core.contracts import MeetingRecord
from scribeline.internal_core.errors import StorageIOError

logger = logging.getLogger(__name__)

FOOTER = "---\n*Generated by Scribeline*\n"


def render_meeting_markdown(meeting: MeetingRecord, include_transcript: bool = False) -> str:
    parts = [
        f"# {meeting.title}\n\n",
        f"**Date:** {meeting.created_at}  \n",
        f"**Last Updated:** {meeting.updated_at}\n\n",
    ]

    if meeting.summary:
        parts.append(f"---\n\n{meeting.summary}\n\n")

    if meeting.action_items:
        parts.append("## Action Items\n\n")
        for item in meeting.action_items:
            checkbox = "[x]" if item.status == "completed" else "[ ]"
            assignee = item.assignee or "Unassigned"
            due = f" (due: {item.due_date})" if item.due_date else ""
            parts.append(f"- {checkbox} **{assignee}**: {item.task}{due}\n")
        parts.append("\n")

    if meeting.notes:
        parts.append(f"## Notes\n\n{meeting.notes}\n\n")

    if include_transcript and meeting.transcript:
        parts.append("## Transcript\n\n")
        parts.append("<details>\n<summary>Click to expand transcript</summary>\n\n")
        parts.append(f"{meeting.transcript}\n\n</details>\n\n")

    parts.append(FOOTER)
    return "".join(parts)


def export_filename(meeting: MeetingRecord) -> str:
    safe_title = "".join(c if c.isalnum() or c in " -" else "_" for c in meeting.title)
    date = meeting.created_at.split("T", 1)[0] or "unknown"
    return f"{date} - {safe_title.strip()}.md"


def export_meeting_markdown(meeting: MeetingRecord, export_dir: Path, include_transcript: bool = False) -> Path:
    try:
        export_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageIOError(f"Failed to create export directory: {exc}") from exc

    out_path = export_dir / export_filename(meeting)
    try:
        out_path.write_text(render_meeting_markdown(meeting, include_transcript), encoding="utf-8")
    except OSError as exc:
        raise StorageIOError(f"Failed to write export file: {exc}") from exc
    logger.info("meeting exported meeting_id=%s path=%s", meeting.id, out_path)
    return out_path
