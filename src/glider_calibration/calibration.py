'''
Calibration of lag parameters over a whole glider trajectory.

Each calibration configuration describes one correction: which sequences
are the raw sensor data, which sequences provide time, depth and flow
speed, and where the corrected sequences go. For every configuration the
lag parameters are either given, or estimated for every pair of
consecutive casts and combined into a single parameter vector. The
correction is then applied to every valid cast.

Provides:
      ProfileOptions()
      SensorLagConfig()
      ThermalLagConfig()
      Calibrator()
      resolve_sequence()
      aggregate_estimates()

Example
-------

>>> config = SensorLagConfig("temperature_corrected", "temperature")
>>> calibrator = Calibrator([config])
>>> outputs, summaries = calibrator.calibrate(data, cast_index, cast_direction)
>>> summaries[0].parameters
array([0.52])
'''
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from functools import partial
import logging

import numpy as np
from shapely.errors import GEOSException

from glider_calibration.estimators import EstimationError, EstimatorOptions
from glider_calibration.estimators import SensorLagEstimator, ThermalLagEstimator
from glider_calibration.filters import correct_sensor_lag, correct_thermal_lag
from glider_calibration.options import ConfigurationError, Options
from glider_calibration.profiles import CastList
from glider_calibration.validation import ValidationOptions, validate_profile

logger = logging.getLogger(__name__)

PairEstimate = namedtuple("PairEstimate", "casts result reason")

CalibrationSummary = namedtuple("CalibrationSummary", "name status inputs parameters estimates")

# errors recorded as a failed pair or an uncorrected cast
COMPUTATION_ERRORS = (EstimationError, ValueError, ArithmeticError, GEOSException)


def resolve_sequence(data, candidates):
    ''' Returns the first available sequence name from a list of candidates

    Parameters
    ----------
    data : dict
        data set
    candidates : str or sequence of str
        sequence names, in order of preference

    Returns
    -------
    str or None
        the first name that is present in data and has at least one
        non-missing value, None if there is no such name.
    '''
    if isinstance(candidates, str):
        candidates = (candidates,)
    for name in candidates:
        if name is None or name not in data:
            continue
        values = np.asarray(data[name], float)
        if values.size and not np.all(np.isnan(values)):
            return name
    return None


def get_aggregator(estimator):
    ''' Returns the function combining the pair estimates

    Parameters
    ----------
    estimator : str or callable
        "median", "mean", or a function accepting an array and an axis keyword

    Returns
    -------
    callable
    '''
    if callable(estimator):
        return estimator
    if estimator == "median":
        return np.nanmedian
    elif estimator == "mean":
        return np.nanmean
    raise ConfigurationError("Unknown estimator {!r} (choose median, mean or a callable).".format(estimator))


def aggregate_estimates(estimates, estimator="median", n_parameters=1):
    ''' Combines parameter estimates component wise

    Parameters
    ----------
    estimates : sequence of (array of float or None)
        parameter vectors. None entries are ignored.
    estimator : str or callable {"median"}
        see :func:`get_aggregator`
    n_parameters : int {1}
        number of parameters, used when there are no estimates

    Returns
    -------
    array of float
        combined parameters. Components without any estimate are nan.

    Example
    -------

    >>> aggregate_estimates([1, 3, np.nan, 5])
    array([3.])
    '''
    aggregator = get_aggregator(estimator)
    rows = [np.atleast_1d(np.asarray(e, float)).ravel() for e in estimates if e is not None]
    if not rows:
        return np.full(n_parameters, np.nan)
    A = np.vstack(rows)
    parameters = np.full(A.shape[1], np.nan)
    for j in range(A.shape[1]):
        column = A[:, j]
        if np.all(np.isnan(column)):
            continue
        parameters[j] = aggregator(column, axis=0)
    return parameters


def _as_candidates(names):
    if names is None:
        return ()
    if isinstance(names, str):
        return (names,)
    return tuple(names)


class ProfileOptions(ValidationOptions):
    '''Validation thresholds applied to every cast during calibration

    Parameters
    ----------
    min_range : float {10}
        minimum depth range of a cast
    max_gap_ratio : float {0.8}
        maximum ratio of the largest gap to the depth range of a cast
    '''
    def __init__(self, min_range=10., max_gap_ratio=0.8):
        super().__init__(min_range=min_range, max_gap_ratio=max_gap_ratio)


class LagConfig(Options):
    ''' Base class of the calibration configurations

    Subclasses list the roles of the input sequences in the order in which
    the estimator expects the columns of a cast, and implement the
    correction.
    '''
    estimator_class = None

    def _setup(self, parameters, time, depth, flow, constant_flow, estimator, options):
        self.time = _as_candidates(time)
        self.depth = _as_candidates(depth)
        self.flow = _as_candidates(flow)
        self.constant_flow = bool(constant_flow)
        self.estimator = estimator
        self.aggregator = get_aggregator(estimator)
        self.options = options
        options = {k.lower(): v for k, v in (options or {}).items()}
        if 'constant_flow' in options:
            raise ConfigurationError("Set constant_flow on the configuration, not in its options.")
        options['constant_flow'] = self.constant_flow
        self.parameter_estimator = self.estimator_class(EstimatorOptions.from_dict(options))
        self.n_parameters = self.parameter_estimator.n_parameters
        if isinstance(parameters, str):
            if parameters.lower() != "auto":
                raise ConfigurationError("Parameters should be 'auto' or a parameter vector (got {!r}).".format(parameters))
            self.parameters = "auto"
        else:
            p = np.atleast_1d(np.asarray(parameters, float)).ravel()
            if p.size != self.n_parameters:
                raise ConfigurationError("{} expects {} parameters (got {}).".format(self.__class__.__name__,
                                                                                  self.n_parameters, p.size))
            self.parameters = p

    @property
    def name(self):
        return "/".join(self.outputs)

    @property
    def fixed_parameters(self):
        if isinstance(self.parameters, str):
            return None
        return self.parameters

    def roles(self):
        raise NotImplementedError

    @property
    def outputs(self):
        raise NotImplementedError

    def resolve(self, data):
        ''' Resolves the input sequence names

        Parameters
        ----------
        data : dict
            data set

        Returns
        -------
        dict or None
            role to sequence name, or None if any of the inputs is unavailable
        '''
        inputs = {}
        for role, candidates in self.roles():
            name = resolve_sequence(data, candidates)
            if name is None:
                logger.warning("Skipped %s: no %s sequence available (tried %s).", self.name, role,
                               ", ".join(str(c) for c in candidates))
                return None
            inputs[role] = name
        return inputs

    def cast_columns(self, data, inputs):
        ''' Returns the input sequences in the column order of a cast '''
        return tuple(np.asarray(data[inputs[role]], float).ravel() for role, _ in self.roles())

    def validate(self, columns, rows, profile_options):
        ''' Validates the rows of a cast. The depth is the second column. '''
        depth = columns[1][rows]
        others = [c[rows] for i, c in enumerate(columns) if i != 1]
        return validate_profile(depth, *others, options=profile_options)

    def correct(self, columns, rows, parameters):
        raise NotImplementedError


class SensorLagConfig(LagConfig):
    '''Configuration of a sensor lag correction

    Parameters
    ----------
    corrected : str
        name of the corrected output sequence
    original : str
        name of the raw sensor sequence
    parameters : "auto" or array of float
        fixed parameters, or "auto" to estimate them
    time, depth, flow : str or sequence of str
        candidate names of the time, depth and flow speed sequences, in order
        of preference. The flow speed is only used for variable flow.
    constant_flow : bool {True}
        one time constant if True, otherwise offset and slope with respect
        to the inverse flow speed.
    estimator : str or callable {"median"}
        function combining the pair estimates
    options : dict or None
        estimator options (guess, lower, upper, solver)
    '''
    estimator_class = SensorLagEstimator

    def __init__(self, corrected, original, parameters="auto", time=("time",), depth=("depth",),
                 flow=("flow_speed",), constant_flow=True, estimator="median", options=None):
        if not corrected or not original:
            raise ConfigurationError("Both corrected and original sequence names are required.")
        self.corrected = corrected
        self.original = original
        self._setup(parameters, time, depth, flow, constant_flow, estimator, options)

    def roles(self):
        roles = [("time", self.time), ("depth", self.depth), ("original", (self.original,))]
        if not self.constant_flow:
            roles.append(("flow", self.flow))
        return roles

    @property
    def outputs(self):
        return (self.corrected,)

    def correct(self, columns, rows, parameters):
        flow = None if self.constant_flow else columns[3][rows]
        value = correct_sensor_lag(columns[0][rows], columns[2][rows], parameters, flow)
        return {self.corrected: value}


class ThermalLagConfig(LagConfig):
    '''Configuration of a thermal lag correction

    Parameters
    ----------
    conductivity_corrected : str or None
        name of the output sequence with the conductivity outside the cell
    temperature_corrected : str or None
        name of the output sequence with the temperature inside the cell
    conductivity_original, temperature_original, pressure_original : str
        names of the raw conductivity (S/m), temperature and pressure sequences
    parameters : "auto" or array of float
        fixed parameters, or "auto" to estimate them
    time, depth, flow : str or sequence of str
        candidate names of the time, depth and flow speed sequences, in order
        of preference. The flow speed is only used for variable flow.
    constant_flow : bool {True}
        error magnitude and time if True, otherwise offset and slope of each.
    estimator : str or callable {"median"}
        function combining the pair estimates
    options : dict or None
        estimator options (guess, lower, upper, solver)
    '''
    estimator_class = ThermalLagEstimator

    def __init__(self, conductivity_corrected, temperature_corrected, conductivity_original="conductivity",
                 temperature_original="temperature", pressure_original="pressure", parameters="auto",
                 time=("time_ctd", "time"), depth=("depth_ctd", "depth"), flow=("flow_ctd", "flow_speed"),
                 constant_flow=True, estimator="median", options=None):
        if not conductivity_corrected and not temperature_corrected:
            raise ConfigurationError("At least one of the corrected sequence names is required.")
        self.conductivity_corrected = conductivity_corrected
        self.temperature_corrected = temperature_corrected
        self.conductivity_original = conductivity_original
        self.temperature_original = temperature_original
        self.pressure_original = pressure_original
        self._setup(parameters, time, depth, flow, constant_flow, estimator, options)

    def roles(self):
        roles = [("time", self.time), ("depth", self.depth),
                 ("conductivity", (self.conductivity_original,)),
                 ("temperature", (self.temperature_original,)),
                 ("pressure", (self.pressure_original,))]
        if not self.constant_flow:
            roles.append(("flow", self.flow))
        return roles

    @property
    def outputs(self):
        return tuple(n for n in (self.temperature_corrected, self.conductivity_corrected) if n)

    def correct(self, columns, rows, parameters):
        flow = None if self.constant_flow else columns[5][rows]
        T_inside, C_outside = correct_thermal_lag(columns[0][rows], columns[2][rows], columns[3][rows],
                                                  parameters, flow)
        corrected = {}
        if self.temperature_corrected:
            corrected[self.temperature_corrected] = T_inside
        if self.conductivity_corrected:
            corrected[self.conductivity_corrected] = C_outside
        return corrected


class Calibrator(object):
    '''Estimates and applies lag corrections over all casts of a trajectory

    Parameters
    ----------
    configs : sequence of SensorLagConfig or ThermalLagConfig
        calibration configurations, processed in order
    profile_options : ProfileOptions, dict or None
        cast validation thresholds. If None, the defaults of ProfileOptions are used.
    max_workers : int {1}
        number of threads estimating cast pairs concurrently. With 1, the
        pairs are processed sequentially.
    '''
    def __init__(self, configs, profile_options=None, max_workers=1):
        self.configs = list(configs)
        if profile_options is None:
            profile_options = ProfileOptions()
        elif not isinstance(profile_options, ValidationOptions):
            profile_options = ProfileOptions.from_dict(profile_options)
        self.profile_options = profile_options
        if int(max_workers) < 1:
            raise ConfigurationError("max_workers should be at least 1 (got {}).".format(max_workers))
        self.max_workers = int(max_workers)

    @classmethod
    def from_options(cls, sensor_lag=(), thermal_lag=(), profile_options=None, max_workers=1):
        '''Creates a Calibrator from option dictionaries

        Configurations that fail to build are logged and left out, the
        others are used.

        Parameters
        ----------
        sensor_lag : sequence of dict
            options of each sensor lag configuration
        thermal_lag : sequence of dict
            options of each thermal lag configuration
        profile_options : dict or None
            cast validation thresholds
        max_workers : int {1}
            see Calibrator

        Returns
        -------
        Calibrator
        '''
        configs = []
        for config_class, options_list in ((SensorLagConfig, sensor_lag), (ThermalLagConfig, thermal_lag)):
            for options in options_list:
                try:
                    configs.append(config_class.from_dict(options))
                except ConfigurationError as e:
                    logger.error("Invalid %s configuration %r: %s", config_class.__name__, options, e)
        return cls(configs, profile_options, max_workers)

    def calibrate(self, data, cast_index, cast_direction):
        ''' Runs all calibration configurations

        Parameters
        ----------
        data : dict
            data set. It is not modified.
        cast_index : array of float
            cast index sequence
        cast_direction : array of float
            cast direction sequence

        Returns
        -------
        outputs : dict
            corrected sequences, by output name
        summaries : list of CalibrationSummary
            report of each configuration
        '''
        casts = CastList(data, cast_index, cast_direction)
        outputs = {}
        summaries = []
        for config in self.configs:
            summary, corrected = self.run_config(config, data, casts)
            outputs.update(corrected)
            summaries.append(summary)
        return outputs, summaries

    def run_config(self, config, data, casts):
        ''' Runs a single configuration

        Returns
        -------
        (CalibrationSummary, dict)
            report and corrected sequences
        '''
        inputs = config.resolve(data)
        if inputs is None:
            return CalibrationSummary(config.name, "skipped", None, None, []), {}
        logger.info("Resolved inputs of %s: %s.", config.name,
                    ", ".join("{}={}".format(k, v) for k, v in inputs.items()))
        columns = config.cast_columns(data, inputs)
        estimates = []
        if config.fixed_parameters is not None:
            parameters = config.fixed_parameters
        else:
            estimates = self.estimate_pairs(config, columns, casts)
            parameters = aggregate_estimates([e.result.parameters for e in estimates if e.result is not None],
                                             config.aggregator, config.n_parameters)
            n_valid = sum(e.result is not None for e in estimates)
            logger.info("Aggregated parameters of %s from %d of %d cast pairs: %s.", config.name,
                        n_valid, len(estimates), parameters)
        if np.any(np.isnan(parameters)):
            logger.warning("Omitted %s: parameters %s are incomplete.", config.name, parameters)
            return CalibrationSummary(config.name, "omitted", inputs, parameters, estimates), {}
        corrected = self.apply_correction(config, columns, casts, parameters)
        logger.info("Performed %s with parameters %s.", config.name, parameters)
        return CalibrationSummary(config.name, "corrected", inputs, parameters, estimates), corrected

    def estimate_pairs(self, config, columns, casts):
        ''' Estimates the parameters for all pairs of consecutive casts

        Returns
        -------
        list of PairEstimate
            one entry per pair (i, i+1), for i = 1..N-1
        '''
        worker = partial(self.estimate_pair, config, columns)
        pairs = list(casts.pairs())
        if self.max_workers > 1 and len(pairs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                return list(executor.map(worker, pairs))
        return [worker(p) for p in pairs]

    def estimate_pair(self, config, columns, pair):
        ''' Estimates the parameters for a pair of consecutive casts

        Parameters
        ----------
        config : SensorLagConfig or ThermalLagConfig
            configuration
        columns : tuple of arrays
            input sequences, as returned by config.cast_columns()
        pair : (int, Cast, Cast)
            number of the first cast, and both casts, as yielded by CastList.pairs()

        Returns
        -------
        PairEstimate
            the estimation result, or None with the reason of failure
        '''
        number, *casts = pair
        numbers = (number, number + 1)
        selected = []
        for cast in casts:
            validation = config.validate(columns, cast.rows, self.profile_options)
            if not validation.valid:
                logger.debug("%s: cast %d is invalid.", config.name, cast.number)
                return PairEstimate(numbers, None, "cast {} is invalid".format(cast.number))
            rows = cast.rows[validation.full_rows]
            selected.append(tuple(c[rows] for c in columns))
        if not casts[0].direction * casts[1].direction < 0:
            logger.debug("%s: casts %d and %d do not have opposite directions.", config.name, *numbers)
            return PairEstimate(numbers, None, "casts do not have opposite directions")
        try:
            result = config.parameter_estimator.estimate(*selected)
        except COMPUTATION_ERRORS as e:
            logger.warning("%s: estimation failed for casts %d and %d: %s", config.name, *numbers, e)
            return PairEstimate(numbers, None, str(e))
        if not result.converged:
            logger.warning("%s: estimation for casts %d and %d did not converge (residual %g).",
                           config.name, *numbers, result.residual)
        logger.info("%s: casts %d and %d, parameters %s, residual %g.", config.name, *numbers,
                    result.parameters, result.residual)
        return PairEstimate(numbers, result, None)

    def apply_correction(self, config, columns, casts, parameters):
        ''' Corrects every valid cast with the given parameters

        Returns
        -------
        dict
            corrected sequences. Rows of invalid casts and rows between casts are nan.
        '''
        n = columns[0].shape[0]
        outputs = {name: np.full(n, np.nan) for name in config.outputs}
        for cast in casts:
            if not config.validate(columns, cast.rows, self.profile_options).valid:
                logger.debug("%s: cast %d is invalid, not corrected.", config.name, cast.number)
                continue
            try:
                corrected = config.correct(columns, cast.rows, parameters)
            except COMPUTATION_ERRORS as e:
                logger.warning("%s: correction failed for cast %d: %s", config.name, cast.number, e)
                continue
            for name, values in corrected.items():
                outputs[name][cast.rows] = values
        return outputs
