"""
Cloud handle cache (pooling).

Avoids creating redundant boto3 clients when the scheduler builds a
target for every resource of the same cluster with the same config.
"""

from __future__ import annotations

import hashlib
import json
import threading
from typing import Any, Callable


class ClientCache:
    """Thread-safe, in-process cache for cloud handles keyed by target kind + config hash."""

    _instance: ClientCache | None = None
    _cache: dict[str, Any]
    _lock: threading.Lock

    def __new__(cls) -> ClientCache:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._cache = {}
            cls._instance._lock = threading.Lock()
        return cls._instance

    @staticmethod
    def _make_key(target_kind: str, config: dict) -> str:
        """Produce a deterministic cache key from target kind and config."""
        # Sort keys so dict ordering doesn't affect the hash.
        serialised = json.dumps(
            {"target": target_kind, "config": config},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(serialised.encode()).hexdigest()

    def get_or_create(
        self,
        target_kind: str,
        config: dict,
        factory: Callable[[], Any],
    ) -> Any:
        """Return a cached handle or create one via *factory*.

        Args:
            target_kind: Execution target kind (e.g. 'aws').
            config: Validated configuration, as a plain dict.
            factory: Zero-argument callable creating a new handle.

        Returns:
            The cached (or newly-created) handle.
        """
        key = self._make_key(target_kind, config)
        with self._lock:
            if key not in self._cache:
                self._cache[key] = factory()
            return self._cache[key]

    def clear(self) -> None:
        """Flush all cached handles."""
        with self._lock:
            self._cache.clear()
