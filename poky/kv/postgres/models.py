"""
Pydantic models for the PostgreSQL key-value layer.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

import psycopg.conninfo
from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_PORT = 5432
DEFAULT_DRIVER = "psycopg"


class ConnectionSpec(BaseModel):
    """Structured connection descriptor parsed from a DSN."""

    model_config = ConfigDict(frozen=True)

    scheme: str
    host: str
    port: int = DEFAULT_PORT
    user: str
    password: Optional[str] = Field(default=None, repr=False)
    database: str = ""
    driver: str = DEFAULT_DRIVER

    @property
    def subname(self) -> str:
        return f"//{self.host}:{self.port}/{self.database}"

    @property
    def conninfo(self) -> str:
        """libpq connection string for the driver."""
        params = dict(host=self.host, port=self.port, user=self.user)
        if self.database:
            params["dbname"] = self.database
        if self.password is not None:
            params["password"] = self.password
        return psycopg.conninfo.make_conninfo(**params)


class PoolSettings(BaseModel):
    """
    Size bounds and idle policy for the connection pool.

    ``max_idle`` bounds how long any connection lives in the pool and
    ``max_idle_excess`` how long a connection above ``min_size`` may sit
    unused before it is closed.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_size: int = Field(default=3, ge=1)
    max_size: int = Field(default=15, ge=1)
    max_idle: float = Field(default=3 * 60 * 60, gt=0)
    max_idle_excess: float = Field(default=30 * 60, gt=0)
    timeout: float = Field(default=30.0, gt=0, description="Seconds to wait for a connection")
    name: str = "poky"

    @field_validator('max_size')
    @classmethod
    def validate_max_size_vs_min(cls, v, info):
        if 'min_size' in info.data and v < info.data['min_size']:
            raise ValueError(f"max_size ({v}) must be >= min_size ({info.data['min_size']})")
        return v


class KVTuple(BaseModel):
    """A row of the ``poky`` table."""

    bucket: str
    key: str
    data: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


class MgetCondition(BaseModel):
    key: str
    modified_at: Optional[datetime] = None


class BatchRecord(BaseModel):
    bucket: str
    key: str
    data: str
    modified_at: Optional[datetime] = None


class SetOutcome(str, Enum):
    """Result of ``upsert_kv_data``."""

    INSERTED = "inserted"
    UPDATED = "updated"
    REJECTED = "rejected"
