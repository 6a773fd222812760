"""URL template parsing and structural matching.

A template is an absolute path such as ``/customers/:customer_id/orders``.
Segments written as ``:name``, ``<name>`` or ``{name}`` capture the concrete
segment under ``name``; all other segments must match literally.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from urllib.parse import unquote

from flapi.services.errors import ConfigurationInvalidError

_CAPTURE_PATTERN = re.compile(r"^(?::(?P<colon>.*)|<(?P<angle>.*)>|\{(?P<brace>.*)\})$")
_CAPTURE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class TemplateSegment:
    """One path segment of a template: either a literal or a named capture."""

    literal: str | None = None
    capture: str | None = None


@dataclass(frozen=True)
class UrlTemplate:
    """Compiled URL template."""

    raw: str
    segments: tuple[TemplateSegment, ...]

    @property
    def capture_names(self) -> tuple[str, ...]:
        """
        Return capture names in template order.

        Returns
        -------
        tuple[str, ...]
            Names bound by this template.
        """
        return tuple(seg.capture for seg in self.segments if seg.capture is not None)

    @property
    def shape(self) -> tuple[str | None, ...]:
        """
        Return the structural key used to detect unreachable duplicates.

        Captures collapse to ``None`` so ``/a/:x`` and ``/a/<y>`` share a shape.

        Returns
        -------
        tuple[str | None, ...]
            Literal values with ``None`` for capture positions.
        """
        return tuple(seg.literal for seg in self.segments)

    def match(self, concrete: Sequence[str]) -> dict[str, str] | None:
        """
        Match already-split, percent-decoded path segments.

        Parameters
        ----------
        concrete:
            Concrete path segments.

        Returns
        -------
        dict[str, str] | None
            Captured values by name, or ``None`` when the path does not match.
        """
        if len(concrete) != len(self.segments):
            return None
        params: dict[str, str] = {}
        for seg, value in zip(self.segments, concrete, strict=True):
            if seg.capture is not None:
                if not value:
                    return None
                params[seg.capture] = value
            elif seg.literal != value:
                return None
        return params


def _parse_segment(raw: str, text: str) -> TemplateSegment:
    found = _CAPTURE_PATTERN.match(text)
    if found is None:
        return TemplateSegment(literal=unquote(text))
    name = found.group("colon") or found.group("angle") or found.group("brace") or ""
    if not _CAPTURE_NAME.match(name):
        message = f"URL template {raw!r} has an invalid capture segment {text!r}"
        raise ConfigurationInvalidError(message, extras={"url_path": raw})
    return TemplateSegment(capture=name)


def parse_url_template(raw: str) -> UrlTemplate:
    """
    Compile a URL template, rejecting malformed ones.

    Parameters
    ----------
    raw:
        Template text from configuration.

    Returns
    -------
    UrlTemplate
        Compiled template.

    Raises
    ------
    ConfigurationInvalidError
        If the template is not absolute, has empty segments, a trailing slash,
        an invalid capture name, or the same capture name twice.
    """
    if not raw.startswith("/"):
        message = f"URL template {raw!r} must start with '/'"
        raise ConfigurationInvalidError(message, extras={"url_path": raw})
    if raw == "/":
        return UrlTemplate(raw=raw, segments=())
    if raw.endswith("/"):
        message = f"URL template {raw!r} must not end with '/'"
        raise ConfigurationInvalidError(message, extras={"url_path": raw})
    parts = raw[1:].split("/")
    if any(part == "" for part in parts):
        message = f"URL template {raw!r} contains an empty path segment"
        raise ConfigurationInvalidError(message, extras={"url_path": raw})

    segments = tuple(_parse_segment(raw, part) for part in parts)
    seen: set[str] = set()
    for seg in segments:
        if seg.capture is None:
            continue
        if seg.capture in seen:
            message = f"URL template {raw!r} declares capture {seg.capture!r} more than once"
            raise ConfigurationInvalidError(message, extras={"url_path": raw})
        seen.add(seg.capture)
    return UrlTemplate(raw=raw, segments=segments)


def split_request_path(path: str) -> tuple[str, ...]:
    """
    Split a concrete request path into percent-decoded segments.

    Splitting happens before decoding so an encoded ``%2F`` stays inside its
    segment. Empty segments are preserved and never match a template.

    Returns
    -------
    tuple[str, ...]
        Decoded segments; ``()`` for the root path.
    """
    path = path.split("?", 1)[0]
    if path in {"", "/"}:
        return ()
    if path.startswith("/"):
        path = path[1:]
    return tuple(unquote(part) for part in path.split("/"))


__all__ = ["TemplateSegment", "UrlTemplate", "parse_url_template", "split_request_path"]
