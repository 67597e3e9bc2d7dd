"""Hook registry ("Book") for ormforge.

A Book holds five independent chains (query, create, update, delete,
save). Each chain maps a stage name to a stage function. Stages are
replaceable: registering under an existing name swaps the
implementation without touching the orchestration that calls it.

Chains are populated once at startup and only read while requests run.
"""

from __future__ import annotations

from typing import Callable

from ormforge.errors import MissingHookError
from ormforge.hooks.types import CHAINS, REQUIRED_STAGES, StageFn


class HookChain:
    """Named stages of one operation.

    Example:
        book = default_book()

        @book.create.hook("before_create_hook")
        def stamp_owner(book, e):
            ...
    """

    def __init__(self, name: str):
        self.name = name
        self._stages: dict[str, StageFn] = {}

    def __repr__(self) -> str:
        return f"HookChain({self.name!r}, stages={self.list_registered()})"

    def register(self, stage: str, fn: StageFn) -> None:
        """Register a stage function, replacing any previous one.

        Args:
            stage: Stage name (see ormforge.hooks.types)
            fn: Function taking (book, engine)
        """
        self._stages[stage] = fn

    def remove(self, stage: str) -> None:
        self._stages.pop(stage, None)

    def get(self, stage: str) -> StageFn | None:
        """Get a stage function, or None if it is not registered."""
        return self._stages.get(stage)

    def require(self, stage: str) -> StageFn:
        """Get a stage function that must exist.

        Raises:
            MissingHookError: If the stage is not registered
        """
        fn = self._stages.get(stage)
        if fn is None:
            raise MissingHookError(self.name, stage)
        return fn

    def is_registered(self, stage: str) -> bool:
        return stage in self._stages

    def list_registered(self) -> list[str]:
        """List all registered stage names."""
        return sorted(self._stages.keys())

    def clear(self) -> None:
        """Clear all registrations. Primarily for testing."""
        self._stages.clear()

    def hook(self, stage: str) -> Callable[[StageFn], StageFn]:
        """Decorator to register a stage function."""

        def decorator(fn: StageFn) -> StageFn:
            self.register(stage, fn)
            return fn

        return decorator


class Book:
    """The five hook chains used by the execution core."""

    def __init__(self) -> None:
        self.query = HookChain("query")
        self.create = HookChain("create")
        self.update = HookChain("update")
        self.delete = HookChain("delete")
        self.save = HookChain("save")

    def chain(self, name: str) -> HookChain:
        if name not in CHAINS:
            raise KeyError(f"unknown hook chain {name!r}")
        return getattr(self, name)

    def chains(self) -> list[HookChain]:
        return [self.chain(name) for name in CHAINS]

    def missing_stages(self) -> list[tuple[str, str]]:
        """Return (chain, stage) pairs for unregistered mandatory stages."""
        missing = []
        for chain_name, stages in REQUIRED_STAGES.items():
            chain = self.chain(chain_name)
            for stage in stages:
                if not chain.is_registered(stage):
                    missing.append((chain_name, stage))
        return missing

    def validate(self) -> "Book":
        """Check every mandatory stage is registered.

        Raises:
            MissingHookError: For the first missing stage
        """
        missing = self.missing_stages()
        if missing:
            raise MissingHookError(*missing[0])
        return self
