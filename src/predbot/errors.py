"""Exception types raised across the market pipeline."""

from __future__ import annotations


class PredbotError(Exception):
    """Base class for predbot errors."""


class UpstreamUnavailable(PredbotError):
    """Gamma or CLOB request failed (transport error or non-2xx status)."""

    def __init__(self, source: str, detail: str, status_code: int | None = None) -> None:
        self.source = source
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{source} unavailable: {detail}")


class PersistenceFailure(PredbotError):
    """A single market could not be written to the store."""

    def __init__(self, natural_id: str, detail: str) -> None:
        self.natural_id = natural_id
        self.detail = detail
        super().__init__(f"failed to persist market {natural_id}: {detail}")
