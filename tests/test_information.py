"""Unit tests for plug-in entropy and conditional mutual information."""
import numpy as np
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from tepid.information import (conditional_mutual_information, encode_symbols, entropy,
                               estimate_distribution, mutual_information)
from tepid.quality_control import ValidationError


def test_T1_entropy_balanced_binary_is_one_bit():
    """T1: A perfectly balanced binary series carries exactly 1 bit."""
    x = np.array([0, 1] * 50)
    assert entropy(x) == pytest.approx(1.0, abs=1e-12)


def test_T2_entropy_constant_series_is_zero():
    """T2: Constant series has zero entropy, whatever the constant."""
    assert entropy(np.zeros(20, dtype=int)) == 0.0
    assert entropy(np.ones(20, dtype=int)) == 0.0


def test_T3_entropy_bounds_on_random_binary():
    """T3: 0 <= H <= log2(|alphabet|) for random binary data."""
    np.random.seed(42)
    x = np.random.randint(0, 2, 1000)
    h = entropy(x)
    assert 0 <= h <= 1.0 + 1e-12, f"H={h} outside [0, 1]"


def test_T4_joint_entropy_of_duplicate_equals_marginal():
    np.random.seed(42)
    x = np.random.randint(0, 2, 500)
    assert entropy(x, x) == pytest.approx(entropy(x), abs=1e-12)


def test_T5_distribution_keys_and_probabilities():
    """T5: Scalar keys for one column, tuple keys for joint variables."""
    dist = estimate_distribution(np.array([0, 0, 1, 1, 1]))
    assert dist == pytest.approx({0: 0.4, 1: 0.6})

    joint = estimate_distribution(np.array([0, 1, 1, 0]), np.array([0, 1, 0, 0]))
    assert joint == pytest.approx({(0, 0): 0.5, (1, 0): 0.25, (1, 1): 0.25})


def test_T6_encode_symbols_follows_sorted_rows():
    codes = encode_symbols(np.array([1, 0, 1, 0]), np.array([1, 1, 0, 1]))
    # Distinct rows sorted: (0,1)->0, (1,0)->1, (1,1)->2
    assert codes.tolist() == [2, 0, 1, 0]


def test_T7_cmi_hand_computed_values():
    """T7: I(X;X|Z) = H(X|Z); XOR gives 0 bits marginally and 1 bit conditionally."""
    x = np.array([0, 0, 1, 1])
    z = np.array([0, 1, 0, 1])
    assert conditional_mutual_information(x, x, z) == pytest.approx(1.0, abs=1e-12)

    xor = x ^ z
    assert mutual_information(x, z) == pytest.approx(0.0, abs=1e-12)
    assert conditional_mutual_information(x, z, xor) == pytest.approx(1.0, abs=1e-12)


def test_T8_cmi_with_constant_condition_equals_mi():
    np.random.seed(42)
    x = np.random.randint(0, 2, 400)
    y = np.where(np.random.rand(400) < 0.8, x, 1 - x)
    z = np.zeros(400, dtype=int)
    assert conditional_mutual_information(x, y, z) == pytest.approx(mutual_information(x, y), abs=1e-12)
    assert mutual_information(x, y) > 0.1


def test_T9_cmi_of_vector_valued_variables():
    """T9: A 2-column variable is one joint symbol."""
    np.random.seed(42)
    a = np.random.randint(0, 2, 800)
    b = np.random.randint(0, 2, 800)
    joint = np.column_stack([a, b])
    z = np.zeros(800, dtype=int)
    # I((A,B); A) = H(A)
    assert conditional_mutual_information(joint, a, z) == pytest.approx(entropy(a), abs=1e-12)


def test_T10_unequal_lengths_rejected():
    with pytest.raises(ValidationError, match="not of equal length"):
        conditional_mutual_information(np.zeros(5), np.zeros(5), np.zeros(4))
    with pytest.raises(ValidationError):
        entropy(np.zeros(3), np.zeros(4))
