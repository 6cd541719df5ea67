from .config import ServiceConfig, load_config
from .session_store import SessionRegistry

__all__ = ["ServiceConfig", "load_config", "SessionRegistry"]
