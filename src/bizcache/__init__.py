"""bizcache: cache-backed session and data layer for a multi-tenant business backend.

Redis is used when configured and reachable; otherwise every operation
falls back to a process-local expiring store.
"""

__version__ = "0.1.0"
