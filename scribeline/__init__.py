"""
Scribeline backend package.

Design intent:
- Orchestrate external transcription and AI worker processes behind one service.
- Keep the subprocess relay, session registry and provider dispatch independent
  of the HTTP surface.
"""
