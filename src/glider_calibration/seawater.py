'''
Seawater properties needed by the thermal lag calibration, computed with
the TEOS-10 gsw library.

Provides:
      salinity()
      density()
'''
import numpy as np
import gsw


def salinity(conductivity, temperature, pressure):
    ''' Practical salinity

    Parameters
    ----------
    conductivity : array of float
        conductivity (S/m)
    temperature : array of float
        in-situ temperature (degrees Celsius, ITS-90)
    pressure : array of float
        sea pressure (dbar)

    Returns
    -------
    array of float
        practical salinity (PSS-78)
    '''
    # gsw expects mS/cm
    C = np.asarray(conductivity, float) * 10.
    return gsw.SP_from_C(C, temperature, pressure)


def density(salinity, temperature, pressure, lon=None, lat=None):
    ''' In-situ density

    Parameters
    ----------
    salinity : array of float
        practical salinity
    temperature : array of float
        in-situ temperature (degrees Celsius)
    pressure : array of float
        sea pressure (dbar)
    lon, lat : float, array of float or None
        position. If given, absolute salinity is used, reference salinity otherwise.

    Returns
    -------
    array of float
        in-situ density (kg/m^3)
    '''
    if lon is None or lat is None:
        SA = gsw.SR_from_SP(salinity)
    else:
        SA = gsw.SA_from_SP(salinity, pressure, lon, lat)
    CT = gsw.CT_from_t(SA, temperature, pressure)
    return gsw.rho(SA, CT, pressure)
