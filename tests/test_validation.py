import numpy as np
import pytest

from glider_calibration.options import ConfigurationError
from glider_calibration.validation import ValidationOptions, monotonic_rows, validate_profile


# A monotonic cast without missing values is valid, and all its rows are full.
def test_monotonic_cast_is_valid():
    valid, full_rows, data = validate_profile([1, 2, 3, 4, 5])
    assert valid
    assert full_rows.all()
    assert data == ()


def test_decreasing_cast_is_valid():
    valid, full_rows, _ = validate_profile([5, 4, 3, 2, 1], [10, 11, 12, 13, 14])
    assert valid
    assert full_rows.all()


# The inversion is removed, the monotonic rows at both ends are kept.
def test_inversion_excluded():
    valid, full_rows, _ = validate_profile([1, 2, 3, 2, 5])
    assert valid
    assert not full_rows[3]
    assert full_rows[[0, 1, 4]].all()


# Rows after an overshooting spike are excluded until the depth exceeds the spike.
def test_spike_excluded():
    mask = monotonic_rows([1, 2, 30, 4, 5, 6, 40])
    assert list(mask) == [True, True, False, False, False, False, True]


def test_ties_are_monotonic():
    assert monotonic_rows([1, 2, 2, 3]).all()
    assert monotonic_rows([3, 3, 3]).all()


def test_missing_depth_not_monotonic():
    mask = monotonic_rows([1, np.nan, 3, 4])
    assert list(mask) == [True, False, True, True]


def test_min_range_exceeds_span():
    valid, full_rows, _ = validate_profile([1, 2, 3, 4, 5], min_range=10)
    assert not valid
    assert full_rows.all()


def test_gap_check():
    depth = [0, 1, 2, 3, 10]
    assert validate_profile(depth, max_gap_ratio=0.8).valid
    assert not validate_profile(depth, max_gap_ratio=0.5).valid


def test_less_than_two_valid_rows():
    valid, full_rows, _ = validate_profile([1, 2, 3], [np.nan, 1, np.nan])
    assert not valid
    assert full_rows.sum() == 1


def test_empty_cast():
    valid, full_rows, _ = validate_profile([np.nan, np.nan], [1, 2])
    assert not valid
    assert not full_rows.any()


def test_masked_data():
    T = np.array([10, 11, np.nan, 13, 14.])
    valid, full_rows, (Tm,) = validate_profile([1, 2, 3, 2, 5], T, mask_value=-999)
    assert list(full_rows) == [True, True, False, False, True]
    assert list(Tm) == [10, 11, -999, -999, 14]
    assert np.isnan(T[2]) # input not modified


def test_dropped_data():
    T = np.array([10, 11, 12, 13, 14.])
    _, _, (Td,) = validate_profile([1, 2, 3, 2, 5], T, drop=True)
    assert list(Td) == [10, 11, 14]


def test_length_mismatch():
    with pytest.raises(ValueError):
        validate_profile([1, 2, 3], [1, 2])


def test_options_and_keywords():
    with pytest.raises(TypeError):
        validate_profile([1, 2, 3], options=ValidationOptions(), min_range=1)


def test_invalid_options():
    with pytest.raises(ConfigurationError):
        ValidationOptions(max_gap_ratio=2)
    with pytest.raises(ConfigurationError):
        ValidationOptions(min_range=-1)
    with pytest.raises(ConfigurationError):
        ValidationOptions.from_dict(dict(min_rnage=1))


def test_options_from_dict():
    options = ValidationOptions.from_dict(dict(MIN_RANGE=5, max_gap_ratio=0.5))
    assert options.min_range == 5
    assert options.max_gap_ratio == 0.5
    assert not options.drop


def test_infinite_values_not_full():
    valid, full_rows, _ = validate_profile([1, 2, np.inf, 4, 5], [10, 11, 12, -np.inf, 14])
    assert valid
    assert list(full_rows) == [True, True, False, False, True]
