"""
HTTP boundary for the Scribeline backend.

Design intent:
- Expose thin, typed endpoints over the service object built at startup.
- Map the error taxonomy to HTTP status codes in one place.
"""
