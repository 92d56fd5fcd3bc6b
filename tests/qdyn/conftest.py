"""Pytest configuration for qdyn tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add qdyn to path
# This file is in tests/qdyn/
# Root is ../../
root_dir = Path(__file__).parents[2]
sys.path.insert(0, str(root_dir / "packages" / "qdyn"))
sys.path.insert(0, str(root_dir))

from qdyn.basis import FockBasis, NLevelBasis, SpinBasis  # noqa: E402
from qdyn.operators import sigmam, sigmax  # noqa: E402
from qdyn.states import spin_up  # noqa: E402


@pytest.fixture
def qubit():
    return SpinBasis(0.5)


@pytest.fixture
def mode():
    return FockBasis(10)


@pytest.fixture
def three_level():
    return NLevelBasis(3)


@pytest.fixture
def jc_times():
    """Output grid 0..20 with spacing 0.1."""
    return np.linspace(0.0, 20.0, 201)


@pytest.fixture
def jc_model():
    """Jaynes-Cummings model with the default parameters."""
    from models.jaynes_cummings import build

    return build({"cutoff": 10, "coupling": 1.0, "decay": 0.5, "alpha": 1.0})


@pytest.fixture
def decaying_qubit(qubit):
    """Driven, decaying qubit: H = (omega/2) sigma_x, J = sqrt(gamma) sigma_-."""
    omega, gamma = 1.0, 0.5
    H = 0.5 * omega * sigmax(qubit)
    J = gamma**0.5 * sigmam(qubit)
    return H, [J], spin_up(qubit)
