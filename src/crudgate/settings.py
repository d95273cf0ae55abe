import os
import threading


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class BackendSettings:
    _instance = None
    _lock = threading.Lock()

    def __init__(self):
        self.DEBUG_MODE = os.environ.get("DEBUG_MODE", "development")
        # Query settings
        self.DEFAULT_PAGE_LIMIT = _int_env("CRUDGATE_DEFAULT_PAGE_LIMIT", 20)
        self.MAX_PAGE_LIMIT = _int_env("CRUDGATE_MAX_PAGE_LIMIT", 100)
        # Permission settings
        self.ADMIN_ROLE = os.environ.get("CRUDGATE_ADMIN_ROLE", "admin")
        self.POLICY_TABLE = os.environ.get("CRUDGATE_POLICY_TABLE", "crudgate_permissions")

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(BackendSettings, cls).__new__(cls)
        return cls._instance

settings = BackendSettings()
