"""
Environment-driven settings.

Values are read once at startup (see `api/main.py`) and passed to the objects
that need them. Unset or malformed numbers fall back to defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

COMPONENT_WRITE_STRATEGIES = ("reuse_existing", "always_insert")
SKU_COMPONENT_LINK_STRATEGIES = ("mapping_only", "append_sku")


def _env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    value = _env_str(name, default).lower()
    if value not in choices:
        raise ValueError(f"Invalid {name}={value!r}. Allowed: {list(choices)}")
    return value


@dataclass(frozen=True)
class Settings:
    database_url: str = ""
    db_pool_min: int = 1
    db_pool_max: int = 5
    db_command_timeout: int = 30

    jwt_secret: str = "dev-change-this-secret"
    jwt_algorithm: str = "HS256"

    azure_connection_string: str = ""
    azure_account: str = ""
    azure_container: str = "sdpdevstoragecontainer"
    azure_packaging_container: str = "packaging"
    azure_use_managed_identity: bool = False

    component_write_strategy: str = "reuse_existing"
    mapping_existence_check: bool = False
    sku_component_link_strategy: str = "mapping_only"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_env_str("DATABASE_URL"),
            db_pool_min=_env_int("DB_POOL_MIN", 1),
            db_pool_max=_env_int("DB_POOL_MAX", 5),
            db_command_timeout=_env_int("DB_COMMAND_TIMEOUT", 30),
            # Local default keeps development simple; set JWT_SECRET in production.
            jwt_secret=_env_str("JWT_SECRET", "dev-change-this-secret"),
            jwt_algorithm=_env_str("JWT_ALG", "HS256"),
            azure_connection_string=_env_str("AZURE_STORAGE_CONNECTION_STRING"),
            azure_account=_env_str("AZURE_STORAGE_ACCOUNT"),
            azure_container=_env_str("AZURE_CONTAINER_NAME", "sdpdevstoragecontainer"),
            azure_packaging_container=_env_str("AZURE_PACKAGING_CONTAINER", "packaging"),
            azure_use_managed_identity=_env_bool("AZURE_USE_MANAGED_IDENTITY", False),
            component_write_strategy=_env_choice(
                "COMPONENT_WRITE_STRATEGY", COMPONENT_WRITE_STRATEGIES, "reuse_existing"
            ),
            mapping_existence_check=_env_bool("MAPPING_EXISTENCE_CHECK", False),
            sku_component_link_strategy=_env_choice(
                "SKU_COMPONENT_LINK_STRATEGY", SKU_COMPONENT_LINK_STRATEGIES, "mapping_only"
            ),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def azure_account_url(self) -> str:
        if not self.azure_account:
            return ""
        return f"https://{self.azure_account}.blob.core.windows.net"
