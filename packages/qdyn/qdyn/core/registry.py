"""qdyn: Lightweight Registry System
--------------------------------

Minimal namespaced registry used to look up integrators (and any other
pluggable builders) by name.

Registry Structure
------------------
The registry is organized by namespaces and keys:

    register(namespace, key)(builder)
    create(namespace, key, *args, **kwargs)

Example:
-------
    from qdyn.core.registry import register

    @register("integrator", "dopri5")
    class DormandPrince:
        ...

"""

from collections.abc import Callable
from typing import Any

from .errors import QDConfigError

__all__ = [
    "register",
    "register_alias",
    "get",
    "create",
    "list_registered",
]

_registry: dict[str, dict[str, Callable[..., Any]]] = {}


def register(
    namespace: str, key: str
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Register a builder (class or factory function) under ``namespace:key``.

    Keys are case-insensitive. Re-registering a key replaces the previous
    entry, which keeps module reloads in tests harmless.

    Parameters
    ----------
    namespace : str
        Namespace for the builder (e.g., "integrator").
    key : str
        Key within the namespace (e.g., "dopri5").

    Returns
    -------
    Callable
        Decorator returning the builder unchanged.

    """

    def decorator(builder: Callable[..., Any]) -> Callable[..., Any]:
        _registry.setdefault(namespace, {})[key.lower()] = builder
        return builder

    return decorator


def register_alias(namespace: str, alias: str, key: str) -> None:
    """Make ``alias`` resolve to the builder already registered as ``key``."""
    builder = get(namespace, key)
    _registry[namespace][alias.lower()] = builder


def get(namespace: str, key: str) -> Callable[..., Any]:
    """Return the builder registered under ``namespace:key``.

    Raises
    ------
    QDConfigError
        - [502] Nothing is registered under the requested name.

    """
    try:
        return _registry[namespace][key.lower()]
    except KeyError:
        known = ", ".join(sorted(_registry.get(namespace, {})))
        raise QDConfigError(
            f"[502] Unknown {namespace} '{key}'. Available: {known or 'none'}"
        ) from None


def create(namespace: str, key: str, *args: Any, **kwargs: Any) -> Any:
    """Build an instance from the builder registered under ``namespace:key``."""
    return get(namespace, key)(*args, **kwargs)


def list_registered(
    namespace: str | None = None,
) -> dict[str, dict[str, Callable[..., Any]]]:
    """List registered builders, optionally restricted to one namespace."""
    if namespace is None:
        return {ns: dict(entries) for ns, entries in _registry.items()}
    return {namespace: dict(_registry.get(namespace, {}))}
