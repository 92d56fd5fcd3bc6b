"""Tests for bases and the composite basis manager."""

from fractions import Fraction

import pytest
from qdyn.basis import FockBasis, GenericBasis, NLevelBasis, SpinBasis, basis_from_dict
from qdyn.composite import CompositeBasis, compose
from qdyn.core.errors import ConstructionError


def test_simple_dimensions():
    assert FockBasis(10).dim == 11
    assert FockBasis(0).dim == 1
    assert SpinBasis(0.5).dim == 2
    assert SpinBasis(1).dim == 3
    assert SpinBasis(Fraction(3, 2)).dim == 4
    assert NLevelBasis(3).dim == 3
    assert GenericBasis(7).dim == 7


def test_value_equality_and_hashing():
    assert FockBasis(4) == FockBasis(4)
    assert FockBasis(4) != FockBasis(5)
    # Same dimension, different kind: not compatible.
    assert FockBasis(2) != NLevelBasis(3)
    assert SpinBasis(0.5) == SpinBasis(Fraction(1, 2))
    assert len({FockBasis(1), FockBasis(1), SpinBasis(0.5)}) == 2


def test_spin_labels_run_from_plus_j():
    assert SpinBasis(0.5).labels == ("+1/2", "-1/2")
    assert SpinBasis(1).labels == ("+1", "0", "-1")
    assert FockBasis(2).labels == ("0", "1", "2")


@pytest.mark.parametrize(
    "factory",
    [
        lambda: FockBasis(-1),
        lambda: FockBasis(2.5),
        lambda: SpinBasis(0.3),
        lambda: SpinBasis(0),
        lambda: NLevelBasis(0),
        lambda: GenericBasis(True),
    ],
)
def test_invalid_parameters_rejected(factory):
    with pytest.raises(ConstructionError):
        factory()


def test_check_index():
    b = NLevelBasis(3)
    assert b.check_index(2) == 2
    with pytest.raises(ConstructionError):
        b.check_index(3)
    with pytest.raises(ConstructionError):
        b.check_index(-1)


def test_to_dict_round_trip():
    bases = [
        FockBasis(3),
        SpinBasis(1.5),
        NLevelBasis(4),
        GenericBasis(2),
        compose(FockBasis(2), SpinBasis(0.5)),
    ]
    for b in bases:
        assert basis_from_dict(b.to_dict()) == b
    with pytest.raises(ConstructionError):
        basis_from_dict({"kind": "qudit"})


def test_composite_dimension_and_factors():
    b = compose(FockBasis(10), SpinBasis(0.5))
    assert isinstance(b, CompositeBasis)
    assert b.dim == 22
    assert b.dims == (11, 2)
    assert b.n_subsystems == 2
    assert b.subsystem(0) == FockBasis(10)
    assert b.subsystem(1) == SpinBasis(0.5)
    with pytest.raises(ConstructionError):
        b.subsystem(2)


def test_last_subsystem_varies_fastest():
    b = compose(NLevelBasis(2), NLevelBasis(3))
    assert [b.multi_index(i) for i in range(b.dim)] == [
        (0, 0),
        (0, 1),
        (0, 2),
        (1, 0),
        (1, 1),
        (1, 2),
    ]
    for i in range(b.dim):
        assert b.flat_index(b.multi_index(i)) == i


def test_composite_index_errors():
    b = compose(NLevelBasis(2), NLevelBasis(3))
    with pytest.raises(ConstructionError):
        b.flat_index((0, 3))
    with pytest.raises(ConstructionError):
        b.flat_index((0,))
    with pytest.raises(ConstructionError):
        b.multi_index(6)


def test_compose_flattens_and_preserves_order():
    a, b, c = FockBasis(1), SpinBasis(0.5), NLevelBasis(3)
    assert compose(compose(a, b), c) == compose(a, b, c)
    assert compose(a, compose(b, c)).factors == (a, b, c)
    assert compose(a) == a
    assert compose(a, b) != compose(b, a)


def test_composite_labels():
    b = compose(FockBasis(1), SpinBasis(0.5))
    assert b.labels == ("0,+1/2", "0,-1/2", "1,+1/2", "1,-1/2")


def test_compose_rejects_non_bases():
    with pytest.raises(ConstructionError):
        compose()
    with pytest.raises(ConstructionError):
        compose(FockBasis(1), 3)
