'''
Splits glider data time series into casts.

A glider trajectory consists of alternating down and up casts. The
splitter assigns each sample a cast index (casts are numbered 1..N,
samples between casts get a fractional index) and a cast direction (+1
down, -1 up, 0 in between). The Cast and CastList classes give access to
the data of single casts, given these two sequences.

Provides:
      Cast()
      CastList()
      ProfileSplitter()
      count_casts()

'''
import logging

import numpy as np

logger = logging.getLogger(__name__)


def count_casts(cast_index):
    ''' Returns the number of casts

    Parameters
    ----------
    cast_index : array of float
        cast index sequence

    Returns
    -------
    int
        integer part of the largest cast index, 0 if there is no valid index.
    '''
    cast_index = np.asarray(cast_index, float)
    if not cast_index.size or np.all(np.isnan(cast_index)):
        return 0
    return max(int(np.fix(np.nanmax(cast_index))), 0)


class Cast(object):
    '''A data class holding a single cast

    Parameters
    ----------
    data : dict
        dictionary with data sequences of the whole trajectory
    rows : array of int
        indices of the rows of this cast
    number : int or None
        cast number
    direction : float {0}
        +1 for a down cast, -1 for an up cast

    The data members can be accessed using a key in the data dictionary
    attribute, or as an attribute of this class.

    Example
    -------

    >>> c = Cast(data, rows, 3, 1)
    >>> c.data["temperature"][c.rows]
    >>> c.temperature
    '''
    def __init__(self, data, rows, number=None, direction=0.):
        self.data = data
        self.rows = rows
        self.number = number
        self.direction = direction
        self.cache = {}

    def __getattr__(self, parameter):
        if parameter in ('data', 'rows', 'cache'):
            raise AttributeError(parameter)
        try:
            data = self.cache[parameter]
        except KeyError:
            try:
                d = self.data[parameter]
            except KeyError:
                raise AttributeError("'{}' object has no attribute '{}'.".format(self.__class__.__name__, parameter))
            data = np.asarray(d)[self.rows]
            self.cache[parameter] = data
        return data

    def __len__(self):
        return len(self.rows)


class CastList(object):
    '''Container class giving access to the casts of a trajectory

    Parameters
    ----------
    data : dict
        dictionary with data sequences
    cast_index : array of float
        cast index sequence
    cast_direction : array of float
        cast direction sequence

    Casts are numbered 1..N, but the list itself is indexed from 0, so that
    casts[0] is cast number 1.
    '''
    def __init__(self, data, cast_index, cast_direction):
        self.data = data
        self.cast_index = np.asarray(cast_index, float).ravel()
        self.cast_direction = np.asarray(cast_direction, float).ravel()
        if self.cast_index.shape != self.cast_direction.shape:
            raise ValueError("Cast index and cast direction sequences differ in length.")
        self.n_casts = count_casts(self.cast_index)

    def __len__(self):
        return self.n_casts

    def __iter__(self):
        for number in range(1, self.n_casts + 1):
            yield self.get_cast(number)

    def __getitem__(self, index):
        if index < 0:
            index += self.n_casts
        if 0 <= index < self.n_casts:
            return self.get_cast(index + 1)
        raise IndexError(f"Index {index} is out of range for {self.n_casts} casts")

    def get_rows(self, number):
        ''' Returns the row indices of cast number '''
        return np.flatnonzero(self.cast_index == number)

    def get_direction(self, rows):
        ''' Returns the first non-zero direction in the given rows, or 0 '''
        d = self.cast_direction[rows]
        d = d[~np.isnan(d) & (d != 0)]
        if d.size:
            return np.sign(d[0])
        return 0.

    def get_cast(self, number):
        '''Returns a cast by its number

        Parameters
        ----------
        number : int
            cast number, from 1 to N

        Returns
        -------
        :class:Cast
        '''
        rows = self.get_rows(number)
        return Cast(self.data, rows, number, self.get_direction(rows))

    def pairs(self):
        '''Yields all pairs of consecutive casts

        Yields
        ------
        (int, Cast, Cast)
            number of the first cast, the cast itself and the next cast
        '''
        if self.n_casts < 2:
            return
        previous = self.get_cast(1)
        for number in range(2, self.n_casts + 1):
            current = self.get_cast(number)
            yield number - 1, previous, current
            previous = current


class ProfileSplitter(object):

    ''' A class to split glider data into casts

    Splits a time series into down and up casts by thresholding the smoothed
    pressure rate.

    Parameters
    ----------
    data : dictionary
        data to be split in casts. The dictionary is expected to contain
        key/value pairs for T_str (default "time") and P_str (default
        "pressure", in dbar).
    window_size : int {9}
        size of window used in the running averaged algorithm to smooth the
        pressure rate
    threshold : float {1e-2}
        pressure rate (dbar/s) the smoothed pressure rate should exceed for a
        sample to be part of a cast
    min_length : int {50}
        minimum number of samples of a cast
    required_depth : float {5}
        maximum pressure a cast should at least reach (dbar)
    required_depth_range : float {15}
        pressure range a cast should at least span (dbar)

    Example
    -------

    >>> splitter = ProfileSplitter(dict(time=t, pressure=P, temperature=T))
    >>> cast_index, cast_direction = splitter.cast_index, splitter.cast_direction
    >>> for cast in splitter.get_casts():
    ...     print(cast.number, cast.direction, cast.temperature.mean())
    '''

    T_str = 'time'
    P_str = 'pressure'

    def __init__(self, data=None, window_size=9, threshold=1e-2, min_length=50,
                 required_depth=5., required_depth_range=15.):
        self.set_window_size(window_size)
        self.set_threshold(threshold)
        self.min_length = min_length
        self.required_depth = required_depth
        self.required_depth_range = required_depth_range
        self.data = data
        self.summary = {}
        self.indices = []
        self.cast_index = None
        self.cast_direction = None
        if data:
            self.split_profiles()

    def set_window_size(self, window_size):
        '''Sets window size used in the moving averaged smoother of the pressure rate'''
        self.window_size = window_size

    def set_threshold(self, threshold):
        '''Sets threshold the smoothed pressure rate should exceed within a cast

        Parameters
        ----------
        threshold : float
            threshold value (dbar/s)
        '''
        self.threshold = threshold

    def split_profiles(self, data=None):
        ''' Splits data into separate casts.

        Parameters
        ----------
        data : data dictionary or None
            a dictionary with data, and at least "time" and "pressure"
            fields. If None, then the data dictionary supplied to the
            constructor is used.

        Returns
        -------
        (array of float, array of float)
            cast index and cast direction sequences
        '''
        self.data = data or self.data
        t = np.asarray(self.data[self.T_str], float)
        P = np.asarray(self.data[self.P_str], float)
        idx_down, idx_up = self._get_indices(t, P)
        casts = [(j, 1.) for j in idx_down] + [(j, -1.) for j in idx_up]
        casts.sort(key=lambda c: c[0][0])
        self.indices = casts
        cast_index = np.full(t.shape, 0.5)
        cast_direction = np.zeros(t.shape, float)
        for k, (j, direction) in enumerate(casts, start=1):
            cast_index[j] = k
            cast_index[j[-1] + 1:] = k + 0.5
            cast_direction[j] = direction
        self.cast_index = cast_index
        self.cast_direction = cast_direction
        logger.info("Found %d casts (%d down, %d up).", len(casts), len(idx_down), len(idx_up))
        return cast_index, cast_direction

    @property
    def nop(self):
        '''Number of casts'''
        return len(self.indices)

    def get_casts(self):
        '''Get all casts

        Returns
        -------
        :class:CastList
            Iterable container structure holding all casts
        '''
        return CastList(self.data, self.cast_index, self.cast_direction)

    # Private methods

    def _get_indices(self, t, P):
        ''' Finds for each cast the down cast indices and the up cast indices

            The method is not intended to be called directly, but from self.split_profiles()
        '''
        _t = t - t[0]
        dT = np.gradient(_t)
        dPdT = np.gradient(P) / dT
        window = np.ones(self.window_size, float) / float(self.window_size)
        dPdT_filtered = np.convolve(dPdT, window, 'same')
        idx_down = self._get_casts(dPdT_filtered, P, "down")
        idx_up = self._get_casts(dPdT_filtered, P, "up")
        self.dPdT = dPdT_filtered
        return idx_down, idx_up

    def _get_casts(self, dPdT_filtered, P, cast="up"):
        direction = int(cast == "down") * 2 - 1
        idx = np.where(direction * dPdT_filtered > self.threshold)[0]
        k = np.where(np.diff(idx) > 1)[0]
        k += 1
        k = np.hstack([[0], k, [len(idx)]])
        jdx = []
        ignored_profiles = []
        for i in range(1, len(k)):
            if k[i] - k[i-1] > self.min_length:
                j = idx[k[i-1]:k[i]]
                pmax = P[j].max()
                ptp = np.ptp(P[j])
                if pmax > self.required_depth and ptp > self.required_depth_range:
                    jdx.append(j)
                else:
                    ignored_profiles.append(i-1)
                    logger.debug("Ignored %s cast: max pressure %f, pressure range %f.", cast, pmax, ptp)
        self.summary['ignored_{}casts'.format(cast)] = ignored_profiles
        return jdx
