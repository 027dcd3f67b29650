import numpy as np
from numpy.typing import NDArray


class _SubType:
    Float = NDArray[np.float64]
    Int = NDArray[np.int_]
    Bool = NDArray[np.bool_]


class _SubAxis(_SubType):
    General = _SubType
    Person = _SubType
    Event = _SubType


class Array(_SubAxis):
    """
    Typing for numpy arrays.

    Every combination is a representation in one of these ways:

    Array.Type
    Array.1stAxis.Type
    Array.1stAxis.2ndAxis.Type

    Possible Types:
    Float, Int, Bool

    Possible 1st Axis - axis has length:
    Person: Number of people
    Species: Number of mosquito species
    Drug: Number of configured drugs
    Event: Number of scheduled intervention events
    General: Any length

    Possible 2nd Axis:
    Person: as above
    Event: as above
    General: as above
    """

    Species = _SubAxis
    Drug = _SubAxis
    Event = _SubAxis
