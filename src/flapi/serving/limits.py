"""Page-size limits for endpoint responses."""

from __future__ import annotations

from dataclasses import dataclass

from flapi.config.serving import ServingConfig


@dataclass(frozen=True)
class PageLimits:
    """Default and maximum page sizes shared by every endpoint."""

    default_limit: int = 100
    max_rows_per_call: int = 1000

    @classmethod
    def from_settings(cls, settings: ServingConfig) -> PageLimits:
        """
        Take page sizes from runtime settings.

        Returns
        -------
        PageLimits
            Limits matching ``settings``.
        """
        return cls(
            default_limit=settings.default_limit,
            max_rows_per_call=settings.max_rows_per_call,
        )


@dataclass(frozen=True)
class ClampResult:
    """A pagination value after bounds checks, plus notes for the log."""

    applied: int
    messages: tuple[str, ...] = ()
    has_error: bool = False


def clamp_limit_value(
    requested: int | None,
    *,
    default: int,
    max_limit: int,
) -> ClampResult:
    """
    Bound a requested page size.

    Parameters
    ----------
    requested:
        ``limit`` from the query string, or ``None`` when absent.
    default:
        Page size used when nothing was requested.
    max_limit:
        Largest page any request may receive.

    Returns
    -------
    ClampResult
        Oversized requests are cut to ``max_limit`` with a note; negative ones
        are flagged as errors.
    """
    limit = default if requested is None else requested
    if limit < 0:
        return ClampResult(applied=0, messages=("limit must be non-negative",), has_error=True)
    if limit > max_limit:
        note = f"limit {limit} exceeds the maximum; serving {max_limit} rows"
        return ClampResult(applied=max_limit, messages=(note,))
    return ClampResult(applied=limit)


def clamp_offset_value(offset: int) -> ClampResult:
    """Reject negative offsets."""
    if offset < 0:
        return ClampResult(applied=0, messages=("offset must be non-negative",), has_error=True)
    return ClampResult(applied=offset)


__all__ = ["ClampResult", "PageLimits", "clamp_limit_value", "clamp_offset_value"]
