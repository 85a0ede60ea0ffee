"""
Usage ledger factory.

Usage:
    from searchbox.usage import make_ledger
    ledger = make_ledger("sqlite", db_path="./data/usage.db")

Adding a new ledger:
    1. Create searchbox/usage/<name>.py implementing UsageLedger.
    2. Add an entry to _REGISTRY below.
    3. Set  usage.backend: <name>  in config.yaml.
"""

from .base import UsageLedger, build_snapshot, default_snapshot

_REGISTRY: dict[str, type[UsageLedger]] = {}


def _register():
    global _REGISTRY
    if _REGISTRY:
        return
    from .memory import MemoryUsageLedger
    from .sqlite import SQLiteUsageLedger
    _REGISTRY["memory"] = MemoryUsageLedger
    _REGISTRY["sqlite"] = SQLiteUsageLedger


def make_ledger(kind: str, **kwargs) -> UsageLedger:
    """
    Instantiate a usage ledger by name.

    Args:
        kind:     Registry key ("memory" or "sqlite").
        **kwargs: Passed directly to the ledger constructor.

    Raises:
        ValueError: If the ledger type is not registered.
    """
    _register()
    cls = _REGISTRY.get(kind)
    if cls is None:
        available = ", ".join(_REGISTRY.keys())
        raise ValueError(
            f"Unknown usage backend: '{kind}'. "
            f"Available: {available}"
        )
    return cls(**kwargs)


def ledger_from_config(cfg: dict) -> UsageLedger:
    """Build the ledger described by the `usage` section of config.yaml."""
    usage_cfg = cfg.get("usage", {})
    kind = usage_cfg.get("backend", "memory")
    kwargs = {
        "cache_ttl": float(usage_cfg.get("cache_ttl_seconds", 60)),
        "read_timeout": float(usage_cfg.get("read_timeout_seconds", 5)),
    }
    if kind == "memory":
        kwargs["history_limit"] = int(usage_cfg.get("history_limit", 50))
    if kind == "sqlite":
        kwargs["db_path"] = usage_cfg.get("sqlite_path", "./data/usage.db")
        kwargs["write_timeout"] = float(usage_cfg.get("write_timeout_seconds", 10))
    return make_ledger(kind, **kwargs)


__all__ = [
    "UsageLedger",
    "build_snapshot",
    "default_snapshot",
    "ledger_from_config",
    "make_ledger",
]
