import time


def is_on(value: str) -> bool:
    return str(value).lower() in ("true", "1", "yes", "on", "y", "t")


def elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000
