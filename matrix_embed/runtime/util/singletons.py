"""Registry of reset hooks for module-level state.

Modules that keep process-wide state (settings, caches) register a
callback here so tests can return everything to a clean slate with one
call.
"""

from __future__ import annotations

from collections.abc import Callable

_RESET_HOOKS: list[Callable[[], None]] = []


def register_singleton(reset: Callable[[], None]) -> None:
    if reset not in _RESET_HOOKS:
        _RESET_HOOKS.append(reset)


def reset_all_singletons() -> None:
    for reset in list(_RESET_HOOKS):
        reset()
