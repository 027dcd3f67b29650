from dataclasses import fields
from typing import TypeVar

import h5py
import numpy as np

from malaria_ibm.utils import array_fully_equal

T = TypeVar("T", bound="ArrayDataclass")


class ArrayDataclass:
    """
    Mixin for dataclasses whose fields are all numpy arrays, so they can be
    written to and read back from a group of an HDF5 file.
    """

    def to_hdf5_group(self, group: h5py.Group) -> None:
        for f in fields(self):  # type: ignore[arg-type]
            group.create_dataset(f.name, data=getattr(self, f.name))

    @classmethod
    def from_hdf5_group(cls: type[T], group: h5py.Group) -> T:
        return cls(
            **{f.name: np.array(group[f.name]) for f in fields(cls)}  # type: ignore[arg-type]
        )

    def copy(self: T) -> T:
        return type(self)(
            **{f.name: getattr(self, f.name).copy() for f in fields(self)}  # type: ignore[arg-type]
        )

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and all(
            array_fully_equal(getattr(self, f.name), getattr(other, f.name))
            for f in fields(self)  # type: ignore[arg-type]
        )
