import numpy as np

from glider_calibration.seawater import density, salinity


# 42.914 mS/cm at 15 degrees and zero pressure is the conductivity of standard seawater
def test_salinity_standard_seawater():
    assert np.isclose(salinity(4.2914, 15., 0.), 35., atol=1e-3)


def test_density():
    rho = density(35., 15., 0.)
    assert np.isclose(rho, 1026., atol=0.2)
    assert density(35., 15., 1000.) > rho
    assert np.isclose(density(35., 15., 0., lon=8., lat=54.), rho, atol=0.1)


def test_nan_propagates():
    S = salinity(np.array([4.2914, np.nan]), np.array([15., 15.]), np.array([0., 0.]))
    assert np.isnan(S[1])
