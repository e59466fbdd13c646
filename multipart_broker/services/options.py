"""Per-operation storage option overrides.

An override is either a static mapping of backend parameters or a function of
the inbound request returning such a mapping. Plain dicts and callables are
normalized into ``StaticOptions`` / ``ComputedOptions`` once, when the
``OperationOptions`` is built, and resolved uniformly at call time.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Union

from starlette.requests import Request

OPERATIONS: tuple[str, ...] = (
    "create_multipart_upload",
    "list_parts",
    "prepare_upload_part",
    "complete_multipart_upload",
    "object_url",
    "abort_multipart_upload",
)


@dataclass(frozen=True, slots=True)
class StaticOptions:
    """Backend parameters fixed at configuration time."""

    values: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def resolve(self, request: Request) -> dict[str, Any]:
        return dict(self.values)


@dataclass(frozen=True, slots=True)
class ComputedOptions:
    """Backend parameters computed from the inbound request."""

    factory: Callable[[Request], Mapping[str, Any] | None]

    def resolve(self, request: Request) -> dict[str, Any]:
        result = self.factory(request)
        if result is None:
            return {}
        if not isinstance(result, Mapping):
            raise TypeError(
                f"Options factory {self.factory!r} must return a mapping, "
                f"got {type(result).__name__}"
            )
        return dict(result)


Override = Union[StaticOptions, ComputedOptions]


def to_override(value: Any) -> Override:
    """Normalize a user-supplied override into a tagged variant."""
    if isinstance(value, (StaticOptions, ComputedOptions)):
        return value
    if isinstance(value, Mapping):
        return StaticOptions(value)
    if callable(value):
        return ComputedOptions(value)
    raise TypeError(
        f"Operation options must be a mapping or a callable, got {type(value).__name__}"
    )


class OperationOptions(Mapping[str, Override]):
    """Immutable mapping from operation name to its override."""

    __slots__ = ("_overrides",)

    def __init__(self, overrides: Mapping[str, Any] | None = None) -> None:
        normalized: dict[str, Override] = {}
        for operation, value in (overrides or {}).items():
            if operation not in OPERATIONS:
                raise ValueError(
                    f"Unknown operation {operation!r}; expected one of: "
                    + ", ".join(OPERATIONS)
                )
            normalized[operation] = to_override(value)
        self._overrides: Mapping[str, Override] = MappingProxyType(normalized)

    def __getitem__(self, operation: str) -> Override:
        return self._overrides[operation]

    def __iter__(self) -> Iterator[str]:
        return iter(self._overrides)

    def __len__(self) -> int:
        return len(self._overrides)

    def __repr__(self) -> str:
        return f"OperationOptions({dict(self._overrides)!r})"

    def resolve(self, operation: str, request: Request) -> dict[str, Any]:
        """Return the backend parameters configured for ``operation``."""
        override = self._overrides.get(operation)
        if override is None:
            return {}
        return override.resolve(request)

    def merged(self, other: Mapping[str, Any] | None) -> "OperationOptions":
        """Return new options where ``other`` replaces per-operation entries."""
        combined: dict[str, Any] = dict(self._overrides)
        combined.update(other or {})
        return OperationOptions(combined)


EMPTY_OPTIONS = OperationOptions()
