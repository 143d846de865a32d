'''
Correction models for lagged sensor responses.

Provides:
      SensorLagFilter()
      ThermalLagFilter()
      correct_sensor_lag()
      correct_thermal_lag()
      compute_ctd_flow_speed()

References
----------
Lueck, R. G. and Picklo, J. J., 1990: Thermal inertia of conductivity
cells: observations with a Sea-Bird cell. J. Atmos. Oceanic Technol., 7,
756-768.

Morison, J., Andersen, R., Larson, N., D'Asaro, E. and Boyd, T., 1994: The
correction for thermal-lag effects in Sea-Bird CTD data. J. Atmos. Oceanic
Technol., 11, 1151-1164.

Garau, B. et al., 2011: Thermal lag correction on Slocum CTD glider data.
J. Atmos. Oceanic Technol., 28, 1065-1071.
'''
import numpy as np
from scipy.interpolate import interp1d


class SensorLagFilter(object):
    ''' First order sensor lag correction

    A sensor with response time tau reports at time t the value the
    ambient water had at time t - tau. The correction therefore reads
    the sensor signal tau seconds ahead.

    For a constant flow through the sensor, tau is a constant. For a
    variable flow speed U,

        tau = tau_offset + tau_slope / U

    Parameters
    ----------
    tau : float
        time constant (s), or offset of the time constant for variable flow
    tau_slope : float or None
        slope of the time constant with respect to the inverse flow
        speed. None for constant flow.
    '''
    def __init__(self, tau, tau_slope=None):
        self.set_parameters(tau, tau_slope)

    def set_parameters(self, tau, tau_slope=None):
        self.tau = tau
        self.tau_slope = tau_slope

    def time_constant(self, flow=None):
        if self.tau_slope is None:
            return self.tau
        if flow is None:
            raise ValueError("Flow speed required for a variable flow time constant.")
        with np.errstate(divide='ignore', invalid='ignore'):
            return self.tau + self.tau_slope / flow

    def filter(self, t, x, flow=None):
        ''' Returns the lag corrected signal

        Parameters
        ----------
        t : array of float
            time (s), without missing values
        x : array of float
            sensor signal, without missing values
        flow : array of float or None
            flow speed (m/s), for variable flow only

        Returns
        -------
        array of float
            corrected signal, or nans if less than two distinct time stamps are given.

        Raises
        ------
        ValueError
            if a time stamp occurs more than once with different signal values
        '''
        t_unique, x_unique = unique_samples(t, x)
        if t_unique.shape[0] < 2:
            return np.full(x.shape, np.nan)
        ifun = interp1d(t_unique, x_unique, fill_value="extrapolate", assume_sorted=True)
        return ifun(t + self.time_constant(flow))


class ThermalLagFilter(object):
    ''' Thermal lag correction for CTD conductivity cells

    Heat stored in the walls of the conductivity cell changes the
    temperature of the water inside the cell, so that the measured
    conductivity does not correspond to the temperature measured outside.
    The error is modelled as a first order filter with error magnitude
    alpha and error time tau, discretised with a bilinear transform.

    For a variable flow speed U through the cell,

        alpha = alpha_offset + alpha_slope / U
        tau = tau_offset + tau_slope / sqrt(U)

    Parameters
    ----------
    alpha : float
        error magnitude, or offset of the error magnitude for variable flow
    tau : float
        error time (s), or offset of the error time for variable flow
    alpha_slope, tau_slope : float or None
        slopes for variable flow. None for constant flow.
    '''
    def __init__(self, alpha, tau, alpha_slope=None, tau_slope=None):
        self.set_parameters(alpha, tau, alpha_slope, tau_slope)

    def set_parameters(self, alpha, tau, alpha_slope=None, tau_slope=None):
        self.alpha = alpha
        self.tau = tau
        self.alpha_slope = alpha_slope
        self.tau_slope = tau_slope

    @property
    def constant_flow(self):
        return self.alpha_slope is None

    def calculate_coefs(self, DT, flow=None):
        if self.constant_flow:
            alpha = self.alpha
            tau = self.tau
        else:
            if flow is None:
                raise ValueError("Flow speed required for variable flow thermal lag parameters.")
            with np.errstate(divide='ignore', invalid='ignore'):
                alpha = self.alpha + self.alpha_slope / flow
                tau = self.tau + self.tau_slope / np.sqrt(flow)
        fn = 2. / DT
        a = alpha * tau * fn / (1. + tau * fn)
        b = 1. - 2. * tau * fn / (1. + tau * fn)
        return a, b

    def filter(self, t, C, T, flow=None):
        ''' Returns the thermal lag corrected temperature and conductivity

        Parameters
        ----------
        t : array of float
            time (s), without missing values
        C : array of float
            conductivity measured inside the cell (S/m)
        T : array of float
            temperature measured outside the cell (degrees Celsius)
        flow : array of float or None
            flow speed through the cell (m/s), for variable flow only

        Returns
        -------
        (array of float, array of float)
            temperature inside the cell, conductivity outside the cell
        '''
        t_unique, (C_unique, T_unique), index = unique_samples(t, C, T, return_index=True)
        if not self.constant_flow:
            flow = flow[index[0]][:-1]
        n = t_unique.shape[0]
        DT = np.diff(t_unique)
        a, b = self.calculate_coefs(DT, flow)
        a = np.broadcast_to(a, DT.shape)
        b = np.broadcast_to(b, DT.shape)
        dCdT = 0.088 + 0.0006 * T_unique
        dT = np.diff(T_unique)
        C_correction = np.zeros(n, float)
        T_correction = np.zeros(n, float)
        for i in range(n - 1):
            C_correction[i+1] = -b[i] * C_correction[i] + a[i] * dCdT[i] * dT[i]
            T_correction[i+1] = -b[i] * T_correction[i] + a[i] * dT[i]
        T_inside = (T_unique - T_correction)[index[1]]
        C_outside = (C_unique + C_correction)[index[1]]
        return T_inside, C_outside


def unique_samples(t, *x, return_index=False):
    ''' Removes repeated time stamps from a set of aligned sequences

    Parameters
    ----------
    t : array of float
        time stamps
    *x : arrays of float
        sequences aligned with t
    return_index : bool {False}
        if True, the indices into the unique samples are returned as well

    Returns
    -------
    t_unique : array of float
        sorted unique time stamps
    x_unique : array or tuple of arrays
        values at the unique time stamps (a single array if one sequence is given)
    index : (array of int, array of int)
        only if return_index is True: indices of the unique samples into the
        input, and indices of the input samples into the unique samples

    Raises
    ------
    ValueError
        if the same time stamp has different values in any of the sequences
    '''
    t_unique, index_from, index_to = np.unique(t, return_index=True, return_inverse=True)
    index_to = index_to.ravel()
    x_unique = []
    for _x in x:
        _x_unique = _x[index_from]
        if np.any(_x != _x_unique[index_to]):
            raise ValueError("Inconsistent sensor data: different values for the same time stamp.")
        x_unique.append(_x_unique)
    x_unique = x_unique[0] if len(x_unique) == 1 else tuple(x_unique)
    if return_index:
        return t_unique, x_unique, (index_from, index_to)
    return t_unique, x_unique


def correct_sensor_lag(time, value, params, flow=None):
    ''' Corrects a sensor sequence for its response time

    Parameters
    ----------
    time : array of float
        time stamps (s). Rows with non-positive or missing time stamps are ignored.
    value : array of float
        sensor sequence
    params : float or array of float
        [tau] for constant flow, or [tau_offset, tau_slope] for variable flow
    flow : array of float or None
        flow speed (m/s) for variable flow. None for constant flow.

    Returns
    -------
    array of float
        corrected sequence, nan where the input rows are invalid

    Example
    -------

    >>> T_cor = correct_sensor_lag(time, T, 0.5)
    >>> T_cor = correct_sensor_lag(time, T, [0.3568, 0.07], flow=U)
    '''
    time = np.asarray(time, float).ravel()
    value = np.asarray(value, float).ravel()
    params = np.atleast_1d(np.asarray(params, float))
    with np.errstate(invalid='ignore'):
        valid = (time > 0) & ~np.isnan(value)
    if flow is None:
        if params.shape != (1,):
            raise ValueError("Constant flow sensor lag takes 1 parameter (got {}).".format(params.size))
        sensor_lag_filter = SensorLagFilter(params[0])
    else:
        if params.shape != (2,):
            raise ValueError("Variable flow sensor lag takes 2 parameters (got {}).".format(params.size))
        flow = np.asarray(flow, float).ravel()
        valid &= ~np.isnan(flow)
        flow = flow[valid]
        sensor_lag_filter = SensorLagFilter(params[0], params[1])
    corrected = np.full(value.shape, np.nan)
    corrected[valid] = sensor_lag_filter.filter(time[valid], value[valid], flow)
    return corrected


def correct_thermal_lag(time, conductivity, temperature, params, flow=None):
    ''' Corrects CTD conductivity and temperature for thermal lag

    Parameters
    ----------
    time : array of float
        time stamps (s). Rows with non-positive or missing time stamps are ignored.
    conductivity : array of float
        conductivity measured inside the cell (S/m)
    temperature : array of float
        temperature measured outside the cell (degrees Celsius)
    params : array of float
        [alpha, tau] for constant flow, or [alpha_offset, alpha_slope,
        tau_offset, tau_slope] for variable flow
    flow : array of float or None
        flow speed through the cell (m/s) for variable flow. None for constant flow.

    Returns
    -------
    (array of float, array of float)
        temperature inside the cell and conductivity outside the cell,
        nan where the input rows are invalid

    Example
    -------

    >>> T_inside, C_outside = correct_thermal_lag(time, C, T, [0.0677, 11.1431])
    '''
    time = np.asarray(time, float).ravel()
    conductivity = np.asarray(conductivity, float).ravel()
    temperature = np.asarray(temperature, float).ravel()
    params = np.atleast_1d(np.asarray(params, float))
    with np.errstate(invalid='ignore'):
        valid = (time > 0) & ~np.isnan(conductivity) & ~np.isnan(temperature)
    if flow is None:
        if params.shape != (2,):
            raise ValueError("Constant flow thermal lag takes 2 parameters (got {}).".format(params.size))
        thermal_lag_filter = ThermalLagFilter(*params)
    else:
        if params.shape != (4,):
            raise ValueError("Variable flow thermal lag takes 4 parameters (got {}).".format(params.size))
        flow = np.asarray(flow, float).ravel()
        valid &= ~np.isnan(flow)
        flow = flow[valid]
        alpha_offset, alpha_slope, tau_offset, tau_slope = params
        thermal_lag_filter = ThermalLagFilter(alpha_offset, tau_offset, alpha_slope, tau_slope)
    T_inside = np.full(temperature.shape, np.nan)
    C_outside = np.full(conductivity.shape, np.nan)
    if np.any(valid):
        T_inside[valid], C_outside[valid] = thermal_lag_filter.filter(time[valid], conductivity[valid],
                                                                      temperature[valid], flow)
    return T_inside, C_outside


def compute_ctd_flow_speed(time, depth, pitch=None, factor_poly=(0.00, 0.03, 1.15),
                           min_velocity=0., min_pitch=0.):
    ''' Estimates the flow speed through an unpumped CTD cell

    The surge speed of the glider follows from the vertical velocity and
    the pitch angle. The flow speed through the cell is the surge speed
    times a flow factor, a polynomial in the surge speed.

    Parameters
    ----------
    time : array of float
        time stamps (s)
    depth : array of float
        depth (m)
    pitch : float, array of float or None
        pitch angle (rad). If None, the surge speed equals the absolute vertical velocity.
    factor_poly : sequence of float {(0, 0.03, 1.15)}
        coefficients of the flow factor polynomial, highest degree first. If empty,
        the flow factor is 1.
    min_velocity : float {0}
        samples with an absolute vertical velocity below this value are set to nan
    min_pitch : float {0}
        samples with an absolute pitch below this value (rad) are set to nan

    Returns
    -------
    array of float
        flow speed (m/s), nan for invalid rows
    '''
    time = np.asarray(time, float).ravel()
    depth = np.asarray(depth, float).ravel()
    with np.errstate(invalid='ignore'):
        valid = (time > 0) & ~np.isnan(depth)
    if pitch is not None and np.size(pitch) > 1:
        pitch = np.asarray(pitch, float).ravel()
        valid &= ~np.isnan(pitch)
        pitch = pitch[valid]
    # repeated time stamps take the depth of their first occurrence
    t, index_from, index_to = np.unique(time[valid], return_index=True, return_inverse=True)
    z = depth[valid][index_from]
    w_unique = np.zeros(t.shape[0], float)
    if t.shape[0] > 1:
        dz = np.diff(z)
        dt = np.diff(t)
        dzdt = dz / dt
        w_unique[[0, -1]] = dzdt[[0, -1]]
        if t.shape[0] > 2:
            # centred differences weighted by the neighbouring intervals
            w_unique[1:-1] = (dt[1:] * dzdt[:-1] + dt[:-1] * dzdt[1:]) / (t[2:] - t[:-2])
    w = w_unique[index_to.ravel()]
    n = w.shape[0]
    if pitch is None:
        surge_speed = np.abs(w)
        low_pitch = np.zeros(n, bool)
    else:
        with np.errstate(divide='ignore'):
            surge_speed = np.abs(w / np.sin(pitch))
        low_pitch = np.abs(pitch) < min_pitch
        low_pitch = np.broadcast_to(low_pitch, surge_speed.shape)
    surge_speed[(np.abs(w) < min_velocity) | low_pitch] = np.nan
    if len(factor_poly):
        flow_factor = np.polyval(factor_poly, surge_speed)
    else:
        flow_factor = 1.
    flow = np.full(time.shape, np.nan)
    flow[valid] = flow_factor * surge_speed
    return flow
