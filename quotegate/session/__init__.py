from .executor import RequestExecutor
from .store import SessionStore

__all__ = ["RequestExecutor", "SessionStore"]
