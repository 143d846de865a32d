from glider_calibration.options import ConfigurationError
from glider_calibration.validation import ValidationOptions, validate_profile
from glider_calibration.area import profile_area
from glider_calibration.filters import correct_sensor_lag, correct_thermal_lag, compute_ctd_flow_speed
from glider_calibration.seawater import salinity, density
from glider_calibration.estimators import EstimationError, EstimationResult, SolverOptions
from glider_calibration.estimators import SensorLagEstimator, ThermalLagEstimator
from glider_calibration.estimators import find_sensor_lag_params, find_thermal_lag_params
from glider_calibration.profiles import Cast, CastList, ProfileSplitter, count_casts
from glider_calibration.calibration import ProfileOptions, SensorLagConfig, ThermalLagConfig
from glider_calibration.calibration import Calibrator, CalibrationSummary, PairEstimate
from glider_calibration.calibration import resolve_sequence, aggregate_estimates

__version__ = "0.3"
