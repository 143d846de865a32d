'''
Area between two profiles.

A down cast and the following up cast, joined head to tail, form a closed
contour in a diagram such as value against depth, or salinity against
temperature. If the sensor response were instantaneous, both casts would
(nearly) coincide and the contour would enclose no area. The enclosed
area is therefore used as the cost function when estimating lag
parameters.

Provides:
      profile_area()

'''
import numpy as np
import shapely
from shapely.geometry import LineString


def profile_area(x1, y1, x2, y2):
    '''Returns the area enclosed by two profiles

    Both profiles are joined into a single contour (profile 1 followed by
    profile 2, closed by an edge back to the first point). As the contour
    generally crosses itself, it is split at its self-intersections into
    simple, non-overlapping faces. The area is the sum of the areas of the
    faces the contour winds around an odd number of times (even-odd rule).

    Parameters
    ----------
    x1, y1 : array of float
        coordinates of the first profile
    x2, y2 : array of float
        coordinates of the second profile

    Returns
    -------
    float
        enclosed area. Rows with missing or infinite coordinates are
        discarded. If less than 3 points remain, or both profiles coincide,
        the area is 0.

    Example
    -------

    >>> profile_area([0, 0, 0], [0, 1, 2], [2, 2, 2], [2, 1, 0])
    4.0
    '''
    xy1 = _valid_points(x1, y1)
    xy2 = _valid_points(x2, y2)
    if xy1.shape == xy2.shape and (np.array_equal(xy1, xy2) or np.array_equal(xy1, xy2[::-1])):
        return 0.
    xy = np.vstack([xy1, xy2])
    if xy.shape[0] < 3:
        return 0.
    contour = LineString(np.vstack([xy, xy[:1]]))
    faces = shapely.get_parts(shapely.polygonize(shapely.get_parts(shapely.node(contour))))
    if not faces.size:
        return 0.
    points = shapely.get_coordinates(shapely.point_on_surface(faces))
    inside = np.abs(winding_numbers(points, xy)) % 2 == 1
    return float(np.sum(shapely.area(faces[inside])))


def winding_numbers(points, vertices):
    '''Winding numbers of a closed polygonal contour around a set of points

    Parameters
    ----------
    points : array of float (n, 2)
        points to evaluate. Points should not lie on the contour.
    vertices : array of float (m, 2)
        vertices of the contour. The closing edge from the last vertex back to
        the first is implied.

    Returns
    -------
    array of int (n,)
        signed number of times the contour winds around each point
        (positive when counter clockwise)
    '''
    points = np.atleast_2d(points)
    x = points[:, 0:1]
    y = points[:, 1:2]
    x0 = vertices[:, 0]
    y0 = vertices[:, 1]
    x1 = np.roll(x0, -1)
    y1 = np.roll(y0, -1)
    side = (x1 - x0) * (y - y0) - (x - x0) * (y1 - y0)
    upward = (y0 <= y) & (y1 > y) & (side > 0)
    downward = (y0 > y) & (y1 <= y) & (side < 0)
    return np.count_nonzero(upward, axis=1) - np.count_nonzero(downward, axis=1)


def _valid_points(x, y):
    xy = np.column_stack([np.asarray(x, float).ravel(), np.asarray(y, float).ravel()])
    return xy[np.all(np.isfinite(xy), axis=1)]
