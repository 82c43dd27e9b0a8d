from __future__ import annotations
from pydantic import BaseModel
import os


class ClientSettings(BaseModel):
    """Client configuration.

    Env Vars:
      PSL_API_URL            (REST server base URL, default http://localhost:3001)
      PSL_SYNC_DEBOUNCE_MS   (quiet period before a bulk sync, default 2000)
      PSL_REQUEST_TIMEOUT    (seconds per HTTP request, default 15)
      PSL_AUTHOR             (attribution stamped on new annotations, default Anonymous)
      PSL_LOG_LEVEL          (default INFO)
    """
    api_url: str = "http://localhost:3001"
    debounce_ms: float = 2000
    request_timeout: float = 15.0
    author: str = "Anonymous"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> 'ClientSettings':
        env = os.environ
        defaults = cls()
        return cls(
            api_url=env.get("PSL_API_URL", defaults.api_url).rstrip('/'),
            debounce_ms=float(env.get("PSL_SYNC_DEBOUNCE_MS", defaults.debounce_ms)),
            request_timeout=float(env.get("PSL_REQUEST_TIMEOUT", defaults.request_timeout)),
            author=env.get("PSL_AUTHOR", defaults.author),
            log_level=env.get("PSL_LOG_LEVEL", defaults.log_level).upper(),
        )
