import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# bounded retry for ConflictError (see retry.py)
CONFLICT_RETRIES = max(1, _int_env("LEDGER_CONFLICT_RETRIES", 3))
CONFLICT_BACKOFF = max(0.0, _float_env("LEDGER_CONFLICT_BACKOFF", 0.05))
