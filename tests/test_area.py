import numpy as np

from glider_calibration.area import profile_area, winding_numbers


def test_identical_curves():
    x = np.array([1., 3., 2., 5.])
    y = np.array([0., 1., 2., 3.])
    assert profile_area(x, y, x, y) == 0
    assert profile_area(x, y, x[::-1], y[::-1]) == 0


# Two vertical lines at x=0 and x=2, joined into a rectangle of 2 by 2.
def test_rectangle():
    assert np.isclose(profile_area([0, 0, 0], [0, 1, 2], [2, 2, 2], [2, 1, 0]), 4)


def test_rectangle_orientation():
    assert np.isclose(profile_area([2, 2, 2], [0, 1, 2], [0, 0, 0], [2, 1, 0]), 4)


# Crossing diagonals form a bow tie of two triangles, each with area 1.
def test_bowtie():
    assert np.isclose(profile_area([0, 2], [0, 2], [0, 2], [2, 0]), 2)


def test_missing_rows_discarded():
    area = profile_area([0, 0, np.nan, 0], [0, 1, 1.5, 2], [2, 2, 2], [2, 1, np.nan])
    # the second curve loses its last point, leaving the trapezoid (0,0),(0,2),(2,2),(2,1)
    assert np.isclose(area, 3)


def test_less_than_three_points():
    assert profile_area([0], [0], [1], [1]) == 0
    assert profile_area([0, np.nan], [0, 1], [1], [1]) == 0


def test_area_non_negative():
    rng = np.random.default_rng(1)
    for _ in range(10):
        x1, y1, x2, y2 = rng.normal(size=(4, 20))
        assert profile_area(x1, y1, x2, y2) >= 0


def test_offset_profiles():
    z = np.linspace(0, 10, 11)
    area = profile_area(np.zeros_like(z), z, np.ones_like(z), z[::-1])
    assert np.isclose(area, 10)


def test_winding_numbers():
    square = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], float)
    w = winding_numbers([[0.5, 0.5], [2, 0.5]], square)
    assert list(w) == [1, 0]
    w = winding_numbers([[0.5, 0.5]], square[::-1])
    assert list(w) == [-1]


# An outer square followed by an inner square in the same sense: the inner
# square is enclosed twice and does not count, nor does the notch (0,0),(1,0.5),(1,1),(0,1).
def test_double_winding():
    area = profile_area([0, 4, 4, 0, 0], [0, 0, 4, 4, 1], [1, 3, 3, 1, 1], [1, 1, 3, 3, 0.5])
    assert area <= 16
    assert np.isclose(area, 16 - 4 - 0.75)


def test_infinite_rows_discarded():
    area = profile_area([0, 0, np.inf, 0], [0, 1, 1.5, 2], [2, 2, 2], [2, 1, 0])
    assert np.isclose(area, 4)
