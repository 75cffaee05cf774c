"""Best-effort cache access for use cases."""

from typing import Any

from engmetrics.core.encoding.json import decode_report, encode_report
from engmetrics.core.errors import CacheFailure, SoftWarning
from engmetrics.core.logs import get_logger
from engmetrics.core.ports import CachePort

logger = get_logger(__name__)

DEFAULT_REPORT_TTL = 3600.0


def cache_key(*parts: str | int | None) -> str:
    """Colon-joined key; slashes are flattened so repository names stay one part."""
    return ":".join(str(part).replace("/", "_") for part in parts if part is not None)


def repository_key_part(repository: str | None) -> str:
    return f"repo_{repository}" if repository else "all_repos"


class AdvisoryCache:
    """Wraps an optional CachePort so that failures never escape.

    Every failure is logged and recorded on ``warnings``; reads degrade to
    a miss and writes to a no-op.
    """

    def __init__(self, cache: CachePort | None, ttl: float = DEFAULT_REPORT_TTL) -> None:
        self._cache = cache
        self._ttl = ttl
        self.warnings: list[SoftWarning] = []

    @property
    def enabled(self) -> bool:
        return self._cache is not None

    def _record(self, exc: Exception, key: str, operation: str) -> None:
        failure = exc if isinstance(exc, CacheFailure) else CacheFailure(str(exc))
        self.warnings.append(SoftWarning.from_exception(failure, f"{operation} {key}"))
        logger.with_fields(cache_key=key, operation=operation, error=str(exc)).warning(
            "Cache unavailable, continuing without it"
        )

    async def read_report(self, key: str) -> dict[str, Any] | None:
        """Return a cached report, or None on miss or failure."""
        if self._cache is None:
            return None
        try:
            payload = await self._cache.read(key)
            if payload is None:
                return None
            return decode_report(payload)
        except Exception as exc:
            self._record(exc, key, "read")
            return None

    async def write_report(self, key: str, report: dict[str, Any]) -> None:
        await self.write(key, encode_report(report))

    async def write(self, key: str, payload: str, ttl: float | None = None) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.write(key, payload, ttl=self._ttl if ttl is None else ttl)
        except Exception as exc:
            self._record(exc, key, "write")
