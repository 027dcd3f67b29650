from typing import TypeVar, overload

import numpy as np
from numpy.typing import NDArray

DType = TypeVar("DType", bound=np.generic)


@overload
def rate_to_prob(rate: float) -> float:
    ...


@overload
def rate_to_prob(rate: NDArray[np.float64]) -> NDArray[np.float64]:
    ...


def rate_to_prob(rate: float | NDArray[np.float64]) -> float | NDArray[np.float64]:
    """Probability of at least one event in a timestep, for a constant rate"""
    return 1 - np.exp(-rate)


def array_fully_equal(a1: NDArray[DType], a2: NDArray[DType]):
    return np.array_equal(a1, a2, equal_nan=True)
