"""qdyn: Expectation Engine
-------------------------
Expectation values ``<psi|A|psi>`` (kets) and ``Tr(A rho)`` (density
matrices) for single states, state sequences and trajectories.

The imaginary part is always kept: taking the real part of a Hermitian
observable is the caller's choice, and a non-zero imaginary part is a useful
hint that a non-Hermitian operator was supplied by mistake.
"""

from collections.abc import Iterable, Sequence
from typing import Any

import numpy as np

from .core.errors import ConstructionError
from .operators import Operator
from .states import State, StateKind

__all__ = ["expect", "variance"]


def _check_compatible(op: Operator, state: State) -> None:
    if op.basis_l != state.basis or op.basis_r != state.basis:
        raise ConstructionError(
            f"[120] Operator {op!r} does not act on the state basis {state.basis!r}"
        )


def _expect_one(op: Operator, state: State) -> complex:
    _check_compatible(op, state)
    match state.kind:
        case StateKind.KET:
            psi = state.data
            return complex(np.vdot(psi, op.data @ psi))
        case StateKind.DENSITY_MATRIX:
            return complex(np.trace(np.asarray(op.data @ state.data)))
    raise ConstructionError(f"[121] Unsupported state kind: {state.kind!r}")


def _as_states(states: Any) -> list[State]:
    if hasattr(states, "kind"):
        return [states]
    if hasattr(states, "states"):
        return list(states.states)
    return list(states)


def expect(op: Operator | Sequence[Operator], states: Any) -> Any:
    """Expectation value(s) of ``op`` in ``states``.

    Parameters
    ----------
    op : Operator or sequence of Operator
        Observable(s); each must be an endomorphism on the state basis.
    states : State, iterable of State, or Trajectory
        A single state, a sequence of states, or any object with a
        ``states`` attribute (e.g. ``Trajectory``).

    Returns
    -------
    complex or numpy.ndarray
        ``complex`` for one operator and one state; a complex array of length
        ``n_states`` for one operator and a sequence; a complex array of shape
        ``(n_ops, n_states)`` for a list of operators and a sequence (or
        ``(n_ops,)`` for a single state).

    Raises
    ------
    ConstructionError
        - [120] Operator and state live on different bases.

    Examples
    --------
    >>> from qdyn.basis import FockBasis
    >>> from qdyn.operators import number
    >>> from qdyn.states import fock
    >>> b = FockBasis(3)
    >>> expect(number(b), fock(b, 2))
    (2+0j)

    """
    single_state = hasattr(states, "kind")
    seq = _as_states(states)

    if isinstance(op, Operator):
        values = np.array([_expect_one(op, s) for s in seq], dtype=np.complex128)
        return complex(values[0]) if single_state else values

    ops = list(op)
    table = np.empty((len(ops), len(seq)), dtype=np.complex128)
    for i, o in enumerate(ops):
        for k, s in enumerate(seq):
            table[i, k] = _expect_one(o, s)
    return table[:, 0] if single_state else table


def variance(op: Operator, states: State | Iterable[State]) -> Any:
    """Variance ``<A^2> - <A>^2`` with the same shape rules as ``expect``."""
    if not hasattr(states, "kind"):
        states = _as_states(states)
    mean = expect(op, states)
    return expect(op @ op, states) - mean**2
