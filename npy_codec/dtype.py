import sys
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .errors import UnsupportedTypeError


@dataclass(frozen=True, kw_only=True)
class WireType:
  kind: str
  word_size: int

  def __str__(self):
    return f"{self.kind}{self.word_size}"


class Dtype(Enum):
  """
  A logical scalar type that can be stored in a .npy file.
  """

  Float32 = WireType(kind='f', word_size=4)
  Float64 = WireType(kind='f', word_size=8)
  Int8 = WireType(kind='i', word_size=1)
  Int16 = WireType(kind='i', word_size=2)
  Int32 = WireType(kind='i', word_size=4)
  Int64 = WireType(kind='i', word_size=8)
  UInt8 = WireType(kind='u', word_size=1)
  UInt16 = WireType(kind='u', word_size=2)
  UInt32 = WireType(kind='u', word_size=4)
  UInt64 = WireType(kind='u', word_size=8)
  Bool = WireType(kind='b', word_size=1)

  @property
  def byte_size(self):
    return self.value.word_size

  @property
  def numpy_dtype(self):
    # Bool has no byte order in numpy, '<' is ignored for it.
    return np.dtype(f"<{self.value}")

  @property
  def wire_type(self) -> WireType:
    return self.value

  def __str__(self):
    return self.name

  @classmethod
  def from_wire_type(cls, wire_type: WireType, /):
    """
    Returns the logical dtype stored with the given kind-code and word size.

    Raises
      UnsupportedTypeError: If the pair does not correspond to any logical dtype.
    """

    try:
      return cls(wire_type)
    except ValueError:
      raise UnsupportedTypeError(wire_type.kind, wire_type.word_size) from None

  @classmethod
  def from_numpy(cls, dtype: np.dtype | str, /):
    dtype = np.dtype(dtype)

    if dtype.byteorder == '>' or (dtype.byteorder == '=' and sys.byteorder == 'big'):
      raise UnsupportedTypeError(dtype.kind, dtype.itemsize)

    return cls.from_wire_type(WireType(kind=dtype.kind, word_size=dtype.itemsize))


__all__ = [
  'Dtype',
  'WireType'
]
