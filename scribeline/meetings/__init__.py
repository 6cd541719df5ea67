"""
Meeting persistence and export.

Design intent:
- Store the meeting list as one pretty-printed JSON document.
- Render a meeting as a standalone markdown file for sharing.
"""

from .export import export_meeting_markdown, render_meeting_markdown
from .store import MeetingStore

__all__ = ["MeetingStore", "export_meeting_markdown", "render_meeting_markdown"]
