'''
Validation of single casts.

A cast is only useful for lag estimation or correction when its depth
sequence is monotonic, it spans a minimum depth range and it is not
interrupted by gaps that are large compared to that range. Rows where the
glider briefly reverses direction, isolated depth spikes and rows with
missing or infinite values are masked out.

Provides:
      ValidationOptions()
      validate_profile()
      monotonic_rows()

'''
from collections import namedtuple
import logging

import numpy as np

from glider_calibration.options import ConfigurationError, Options

logger = logging.getLogger(__name__)

ValidationResult = namedtuple("ValidationResult", "valid full_rows data")


class ValidationOptions(Options):
    '''Thresholds for cast validation

    Parameters
    ----------
    min_range : float {0}
        minimum depth range a cast should span. Set to 0 to accept casts of
        any range.
    max_gap_ratio : float {1}
        maximum ratio of the largest gap to the depth range of the cast,
        in [0, 1]. Set to 1 to accept casts with gaps of any size.
    mask_value : float {nan}
        value that replaces rows outside the valid rows in the returned data
    drop : bool {False}
        if True, rows outside the valid rows are removed from the returned
        data instead of being replaced by mask_value.
    '''
    def __init__(self, min_range=0., max_gap_ratio=1., mask_value=np.nan, drop=False):
        if not min_range >= 0:
            raise ConfigurationError("min_range should be non-negative (got {}).".format(min_range))
        if not 0 <= max_gap_ratio <= 1:
            raise ConfigurationError("max_gap_ratio should be in [0, 1] (got {}).".format(max_gap_ratio))
        self.min_range = float(min_range)
        self.max_gap_ratio = float(max_gap_ratio)
        self.mask_value = mask_value
        self.drop = bool(drop)


def monotonic_rows(depth):
    ''' Returns a mask of the rows on the monotonic envelope of a depth sequence

    The orientation of the cast follows from which of the global depth
    minimum and maximum comes first. Going from the first extremum to
    the end, a running maximum is kept, and going from the second
    extremum back to the start, a running minimum. Rows where both
    running values agree are monotonic; depth inversions and spikes
    are not.

    Parameters
    ----------
    depth : array of float
        depth (or pressure) sequence, may contain nans

    Returns
    -------
    array of bool
        True for rows on the monotonic envelope. Rows with missing or infinite depth
        are False.
    '''
    depth = np.asarray(depth, float).ravel()
    mask = np.zeros(depth.shape, bool)
    idx = np.flatnonzero(np.isfinite(depth))
    if not idx.size:
        return mask
    z = depth[idx]
    if np.argmax(z) < np.argmin(z):
        # depth decreases along the cast
        z = -z
    # first occurrence of the minimum, last occurrence of the maximum
    i_first = np.argmin(z)
    i_last = z.shape[0] - 1 - np.argmax(z[::-1])
    running_max = np.full(z.shape, np.nan)
    running_max[i_first:] = np.maximum.accumulate(z[i_first:])
    running_min = np.full(z.shape, np.nan)
    running_min[:i_last+1] = np.minimum.accumulate(z[i_last::-1])[::-1]
    mask[idx] = running_max == running_min
    return mask


def validate_profile(depth, *data, options=None, **kwds):
    ''' Checks whether a cast is usable and which of its rows are complete

    Parameters
    ----------
    depth : array of float
        depth (or pressure) sequence of the cast
    *data : arrays of float
        data sequences aligned with depth
    options : ValidationOptions or None
        validation thresholds. If None, a ValidationOptions is created from kwds.
    **kwds : keywords passed on to :obj:`ValidationOptions`

    Returns
    -------
    ValidationResult
        namedtuple with

        * valid: True if the cast passes the emptiness, range and gap checks
        * full_rows: mask of rows without missing or infinite values that lie on the
          monotonic envelope of the depth sequence
        * data: tuple with copies of the data sequences, with rows outside
          full_rows masked or dropped according to the options

    Example
    -------

    >>> valid, full_rows, (T, C) = validate_profile(depth, T, C, min_range=10, max_gap_ratio=0.8)
    '''
    if options is None:
        options = ValidationOptions(**kwds)
    elif kwds:
        raise TypeError("Specify either options or keywords, not both.")
    depth = np.asarray(depth, float).ravel()
    columns = [np.asarray(d, float).ravel() for d in data]
    for i, c in enumerate(columns):
        if c.shape != depth.shape:
            raise ValueError("Data sequence {} has {} rows, depth has {}.".format(i, c.shape[0], depth.shape[0]))
    data_valid = np.isfinite(depth)
    for c in columns:
        data_valid &= np.isfinite(c)
    full_rows = data_valid & monotonic_rows(depth)
    valid = _check_cast(depth, data_valid, full_rows, options)
    return ValidationResult(valid, full_rows, _mask_data(columns, full_rows, options))


def _check_cast(depth, data_valid, full_rows, options):
    if not np.any(full_rows):
        logger.debug("No full rows in cast.")
        return False
    if np.count_nonzero(data_valid) < 2:
        logger.debug("Less than 2 valid rows in cast.")
        return False
    z = depth[data_valid]
    depth_range = z.max() - z.min()
    if depth_range < options.min_range:
        logger.debug("Depth range %f below %f.", depth_range, options.min_range)
        return False
    z_all = depth[np.isfinite(depth)]
    z_full = depth[full_rows]
    gaps = [z_full.min() - z_all.min(), z_all.max() - z_full.max()]
    if z_full.size > 1:
        gaps.append(np.abs(np.diff(z_full)).max())
    max_gap = max(gaps)
    if max_gap > options.max_gap_ratio * depth_range:
        logger.debug("Largest gap %f exceeds %f of depth range %f.", max_gap,
                     options.max_gap_ratio, depth_range)
        return False
    return True


def _mask_data(columns, full_rows, options):
    if options.drop:
        return tuple(c[full_rows] for c in columns)
    masked = []
    for c in columns:
        c = c.copy()
        c[~full_rows] = options.mask_value
        masked.append(c)
    return tuple(masked)
