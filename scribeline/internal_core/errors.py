from __future__ import annotations

from typing import Optional


class ScribeError(RuntimeError):
    code = "SCRIBE_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NotFoundError(ScribeError):
    code = "NOT_FOUND"
    status_code = 404


class SessionNotFoundError(NotFoundError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class ConfigurationError(ScribeError):
    code = "CONFIGURATION_ERROR"
    status_code = 400


class DecodeError(ScribeError):
    code = "DECODE_ERROR"
    status_code = 400


class StorageIOError(ScribeError):
    code = "IO_ERROR"
    status_code = 500


class ProcessSpawnError(ScribeError):
    code = "PROCESS_SPAWN_ERROR"
    status_code = 500


class ProcessExitError(ScribeError):
    code = "PROCESS_EXIT_ERROR"
    status_code = 502

    def __init__(
        self,
        label: str,
        *,
        returncode: int,
        command: str,
        stdout: str,
        stderr: str,
    ):
        super().__init__(
            f"{label} failed (code {returncode}).\n"
            f"Command: {command}\n"
            f"stdout: {stdout}\n"
            f"stderr: {stderr}"
        )
        self.returncode = returncode
        self.command = command
        self.stdout = stdout
        self.stderr = stderr


class WorkerCancelledError(ScribeError):
    code = "WORKER_CANCELLED"
    status_code = 504


class RemoteAPIError(ScribeError):
    code = "REMOTE_API_ERROR"
    status_code = 502

    def __init__(self, message: str, *, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body
