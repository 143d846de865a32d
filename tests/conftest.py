import numpy as np
import gsw
from pytest import fixture

T0 = 1e6 # start time of the synthetic trajectory
SPEED = 0.2 # vertical speed (m/s)
DEPTH_MAX = 100.
CAST_DURATION = DEPTH_MAX / SPEED
LAG = 2.


def depth_at(t_rel):
    phase = np.mod(t_rel, 2 * CAST_DURATION)
    return np.where(phase < CAST_DURATION, SPEED * phase, DEPTH_MAX - SPEED * (phase - CAST_DURATION))


def temperature_at(z):
    return 12. - 4. * np.tanh((z - 40.) / 8.)


def salinity_at(z):
    return 34. + 0.5 * np.tanh((z - 40.) / 8.)


def make_yo(n_casts=4, lag=LAG, dt=1.):
    '''Synthetic yo of n_casts alternating down and up casts, sampled every dt seconds.

    The temperature sensor lags the true temperature by lag seconds.
    '''
    t_rel = np.arange(0, n_casts * CAST_DURATION, dt)
    z = depth_at(t_rel)
    k = (t_rel // CAST_DURATION).astype(int)
    cast_index = k + 1.
    cast_direction = np.where(k % 2 == 0, 1., -1.)
    T_true = temperature_at(z)
    S_true = salinity_at(z)
    C = gsw.C_from_SP(S_true, T_true, z) / 10.
    data = dict(time=T0 + t_rel,
                depth=z,
                pressure=z.copy(),
                temperature=temperature_at(depth_at(t_rel - lag)),
                temperature_true=T_true,
                conductivity=C,
                ctd_temperature=T_true.copy())
    return data, cast_index, cast_direction


@fixture
def yo():
    return make_yo()


@fixture
def yo_pair():
    return make_yo(n_casts=2)


@fixture
def sensor_lag_casts(yo_pair):
    data, cast_index, _ = yo_pair
    casts = []
    for k in (1, 2):
        i = cast_index == k
        casts.append((data["time"][i], data["depth"][i], data["temperature"][i]))
    return casts


@fixture
def thermal_lag_casts(yo_pair):
    data, cast_index, _ = yo_pair
    casts = []
    for k in (1, 2):
        i = cast_index == k
        casts.append(tuple(data[p][i] for p in ("time", "depth", "conductivity", "ctd_temperature", "pressure")))
    return casts
