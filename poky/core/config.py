import os
import sys
from typing import Mapping, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator, field_validator

from poky.core.common import is_on


_ENV_LOADED = False


def _load_env_file(path: str) -> None:
    """
    Minimal .env loader: loads KEY=VALUE pairs into os.environ.
    - Ignores empty lines and lines starting with '#'
    - Supports values wrapped in single or double quotes
    - Never overrides existing environment variables
    """
    try:
        if not path or not os.path.exists(path):
            return
        with open(path, "r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].strip()
                if "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()
                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]
                if key not in os.environ:
                    os.environ[key] = value
    except PermissionError as e:
        print(f"FATAL: Permission denied reading environment file {path}: {e}", file=sys.stderr)
        raise


def load_env_if_present() -> None:
    """
    Load environment variables from POKY_ENV_FILE when set, otherwise from
    .env.local and .env in the working directory (first one wins per key).
    """
    global _ENV_LOADED
    if _ENV_LOADED:
        return

    custom = os.environ.get("POKY_ENV_FILE")
    if custom:
        _load_env_file(custom)
    else:
        for env_file in ('.env.local', '.env'):
            _load_env_file(env_file)

    _ENV_LOADED = True


class PokySettings(BaseModel):
    """
    Settings consumed when the key-value store builds its pool.

    Read once; the store never consults the environment after construction.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    dsn: Optional[str] = Field(default=None, alias="POKY_DSN")
    driver: str = Field(default="psycopg", alias="POKY_DRIVER")
    min_pool_size: int = Field(default=3, alias="MIN_POOL_SIZE")
    max_pool_size: int = Field(default=15, alias="MAX_POOL_SIZE")
    pool_timeout: float = Field(default=30.0, alias="POKY_POOL_TIMEOUT")
    partitioned: bool = Field(default=False, alias="POKY_PARTITIONED")

    @field_validator('partitioned', mode='before')
    def coerce_bool(cls, v):
        if isinstance(v, bool):
            return v
        if v is None:
            return False
        return is_on(str(v).strip())

    @field_validator('min_pool_size', 'max_pool_size', mode='before')
    def coerce_int(cls, v):
        if isinstance(v, str):
            return int(v.strip())
        return v

    @field_validator('pool_timeout', mode='before')
    def coerce_float(cls, v):
        if isinstance(v, str):
            return float(v.strip())
        return v

    @model_validator(mode='after')
    def validate_pool_bounds(self):
        if self.min_pool_size < 1 or self.max_pool_size < 1:
            raise ValueError("pool sizes must be positive integers")
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) must be <= max_pool_size ({self.max_pool_size})"
            )
        if self.pool_timeout <= 0:
            raise ValueError("pool_timeout must be positive")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "PokySettings":
        """
        Build settings from environment variables. Keyword overrides take
        precedence over the environment and use field names.
        """
        if environ is None:
            load_env_if_present()
            environ = os.environ
        values = {}
        for name, field in cls.model_fields.items():
            if field.alias and field.alias in environ:
                values[name] = environ[field.alias]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
