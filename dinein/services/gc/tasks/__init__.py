"""GC tasks."""

from dinein.services.gc.tasks.expired_api_key import ExpiredApiKeyGC

__all__ = ["ExpiredApiKeyGC"]
