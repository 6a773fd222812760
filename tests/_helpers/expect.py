"""Minimal expectation helpers to avoid assert statements in tests."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

from flapi.services.errors import ProblemError

T = TypeVar("T")


def _prefix(label: str | None) -> str:
    return f"{label}: " if label else ""


def expect_true(condition: object, *, message: str | None = None) -> None:
    """
    Raise AssertionError when condition is falsy.

    Raises
    ------
    AssertionError
        If ``condition`` evaluates to ``False``.
    """
    if bool(condition):
        return
    raise AssertionError(message or "Expected condition to be true")


def expect_equal(actual: T, expected: T, *, label: str | None = None) -> None:
    """
    Assert equality with an optional label.

    Raises
    ------
    AssertionError
        If ``actual`` and ``expected`` differ.
    """
    if actual == expected:
        return
    raise AssertionError(f"{_prefix(label)}expected {expected!r}, got {actual!r}")


def expect_in(member: T, container: Iterable[T], *, label: str | None = None) -> None:
    """
    Assert that member is present in container.

    Raises
    ------
    AssertionError
        If ``member`` is not found.
    """
    if member in container:
        return
    raise AssertionError(f"{_prefix(label)}{member!r} not found in {container!r}")


def expect_problem(exc: ProblemError, *, code: str, status: int | None = None) -> None:
    """
    Assert a raised ProblemError carries the expected code and status.

    Raises
    ------
    AssertionError
        If the code or status differ.
    """
    detail = exc.problem_detail
    expect_equal(detail.code, code, label="problem code")
    if status is not None:
        expect_equal(detail.status, status, label="problem status")
