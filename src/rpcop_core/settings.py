"""Per-method call settings for a generated client.

Nothing here is looked up implicitly: a client builds a `ServiceSettings`
(usually from `default_service_settings`) and hands each method's policy to
its `RetryEngine`.
"""

from __future__ import annotations
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from .classify import Code
from .core import RetryPolicy
from .paging import PageStreamingDescriptor

IDEMPOTENT = "idempotent"
NON_IDEMPOTENT = "non_idempotent"


def retry_code_tables() -> Dict[str, FrozenSet[Code]]:
    return {
        IDEMPOTENT: frozenset({Code.DEADLINE_EXCEEDED, Code.UNAVAILABLE}),
        NON_IDEMPOTENT: frozenset(),
    }


def default_retry_params() -> RetryPolicy:
    return RetryPolicy(
        initial_delay=0.1,
        delay_multiplier=1.3,
        max_delay=60.0,
        initial_call_timeout=20.0,
        call_timeout_multiplier=1.0,
        max_call_timeout=20.0,
        total_timeout=600.0,
    )


@dataclass(frozen=True)
class MethodSettings:
    """Retry configuration of one API method; `descriptor` is set for paged methods."""

    name: str
    retry_codes: FrozenSet[Code] = frozenset()
    params: RetryPolicy = field(default_factory=default_retry_params)
    descriptor: Optional[PageStreamingDescriptor] = None

    @property
    def policy(self) -> RetryPolicy:
        return self.params.with_codes(self.retry_codes)

    @property
    def paged(self) -> bool:
        return self.descriptor is not None


class ServiceSettings:
    def __init__(self, methods: Iterable[MethodSettings] = ()) -> None:
        self._methods: Dict[str, MethodSettings] = {m.name: m for m in methods}

    def __contains__(self, name: str) -> bool:
        return name in self._methods

    def __iter__(self):
        return iter(self._methods.values())

    def method(self, name: str) -> MethodSettings:
        try:
            return self._methods[name]
        except KeyError:
            raise KeyError(f"no settings for method {name!r}") from None

    def policy_for(self, name: str) -> RetryPolicy:
        return self.method(name).policy

    def with_method(self, name: str, **changes: Any) -> "ServiceSettings":
        updated = dataclasses.replace(self.method(name), **changes)
        return ServiceSettings({**self._methods, name: updated}.values())

    def apply_to_all(self, **param_changes: Any) -> "ServiceSettings":
        """Override retry parameters on every method. None values are ignored."""
        changes = {k: v for k, v in param_changes.items() if v is not None}
        return ServiceSettings(
            dataclasses.replace(m, params=dataclasses.replace(m.params, **changes))
            for m in self._methods.values()
        )


def default_service_settings(
    kinds: Mapping[str, str],
    *,
    descriptors: Optional[Mapping[str, PageStreamingDescriptor]] = None,
    params: Optional[RetryPolicy] = None,
    code_tables: Optional[Mapping[str, FrozenSet[Code]]] = None,
) -> ServiceSettings:
    """Settings with each method bound to a named retry code table.

    `kinds` maps method name to a table name, e.g.
    ``{"list_groups": IDEMPOTENT, "create_group": NON_IDEMPOTENT}``.
    """
    tables = dict(code_tables or retry_code_tables())
    descriptors = descriptors or {}
    params = params or default_retry_params()
    methods = []
    for name, kind in kinds.items():
        if kind not in tables:
            raise ValueError(f"unknown retry code table {kind!r} for method {name!r}")
        methods.append(
            MethodSettings(
                name=name,
                retry_codes=tables[kind],
                params=params,
                descriptor=descriptors.get(name),
            )
        )
    return ServiceSettings(methods)
