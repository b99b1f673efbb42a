# careermatrix/core/config.py

from __future__ import annotations

import os

from pydantic import BaseModel


def _env(name: str, default: str) -> str:
    legacy = name.replace("CAREERMATRIX_", "MATRIX_", 1) if name.startswith("CAREERMATRIX_") else name
    return os.getenv(name, os.getenv(legacy, default))


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, "true" if default else "false").strip().lower() == "true"


class StoreConfig(BaseModel):
    """Backing store selection."""
    mode: str = "inmem"
    sqlite_path: str = "./careermatrix.db"


class MatrixPolicyConfig(BaseModel):
    """Write-path and read-path policies of the matrix engine."""
    reject_duplicate_capabilities: bool = True
    fallback_enabled: bool = False
    seed_sample_on_startup: bool = False


class MatrixConfig(BaseModel):
    store: StoreConfig = StoreConfig()
    policy: MatrixPolicyConfig = MatrixPolicyConfig()
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = False

    @classmethod
    def from_env(cls) -> "MatrixConfig":
        """Loads configuration from CAREERMATRIX_* environment variables."""
        return cls(
            store=StoreConfig(
                mode=_env("CAREERMATRIX_STORE", "inmem").strip().lower(),
                sqlite_path=_env("CAREERMATRIX_SQLITE_PATH", "./careermatrix.db"),
            ),
            policy=MatrixPolicyConfig(
                reject_duplicate_capabilities=_env_bool("CAREERMATRIX_REJECT_DUPLICATE_CAPABILITIES", True),
                fallback_enabled=_env_bool("CAREERMATRIX_FALLBACK_ENABLED", False),
                seed_sample_on_startup=_env_bool("CAREERMATRIX_SEED_SAMPLE", False),
            ),
            api_host=_env("CAREERMATRIX_API_HOST", "0.0.0.0"),
            api_port=int(_env("CAREERMATRIX_API_PORT", "8000")),
            debug=_env_bool("CAREERMATRIX_DEBUG", False),
        )


config = MatrixConfig.from_env()
