from __future__ import annotations
from typing import List
from pydantic import BaseModel
import os


class ServerSettings(BaseModel):
    """Server configuration.

    Env Vars:
      PSL_STORAGE_DIR     (JSON document store directory, default storage)
      PSL_MAX_UPLOAD_MB   (upload size limit, default 10)
      PSL_CORS_ORIGINS    (comma-separated, default *)
      PSL_LOG_LEVEL       (default INFO)
      PORT                (default 3001)
    """
    storage_dir: str = "storage"
    max_upload_mb: float = 10
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"
    port: int = 3001

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)

    @classmethod
    def from_env(cls) -> 'ServerSettings':
        env = os.environ
        defaults = cls()
        origins = [o.strip() for o in env.get("PSL_CORS_ORIGINS", "*").split(',') if o.strip()]
        return cls(
            storage_dir=env.get("PSL_STORAGE_DIR", defaults.storage_dir),
            max_upload_mb=float(env.get("PSL_MAX_UPLOAD_MB", defaults.max_upload_mb)),
            cors_origins=origins or defaults.cors_origins,
            log_level=env.get("PSL_LOG_LEVEL", defaults.log_level).upper(),
            port=int(env.get("PORT", defaults.port)),
        )
