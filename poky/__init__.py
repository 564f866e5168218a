from .core.config import PokySettings
from .core.logger import setup_logger
from .kv.postgres import PostgresKeyValue

__all__ = [
    "PokySettings",
    "setup_logger",
    "PostgresKeyValue",
]
