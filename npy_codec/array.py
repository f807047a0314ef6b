from typing import Optional

import numpy as np

from .dtype import Dtype, WireType
from .utils import ArrayShape, num_elements


class NpyArray:
  """
  A shaped array of scalars stored in a shared, contiguous byte buffer.

  Handles obtained through view() alias the same buffer as the handle they were created from, so that writes through any of them are visible through all. Use copy() to obtain independent storage. No synchronization is performed between handles.
  """

  def __init__(
    self,
    shape: ArrayShape,
    wire_type: Dtype | WireType,
    /,
    *,
    buffer: Optional[bytearray] = None,
    fortran_order: bool = False
  ):
    """
    Creates an array, allocating a zero-filled buffer unless one is provided.

    Parameters
      buffer: An existing buffer to share. Its length must match the shape and wire type.
      fortran_order: Whether the buffer holds the elements in column-major order.
      shape: The shape of the array, empty for a scalar.
      wire_type: The kind-code and word size of the scalars, or the logical dtype they correspond to.
    """

    if isinstance(wire_type, Dtype):
      wire_type = wire_type.wire_type

    shape = tuple(int(dim) for dim in shape)

    if any(dim < 0 for dim in shape):
      raise ValueError(f"Invalid shape {shape}")
    if wire_type.word_size < 1:
      raise ValueError(f"Invalid word size {wire_type.word_size}")

    nbytes = num_elements(shape) * wire_type.word_size

    if buffer is None:
      buffer = bytearray(nbytes)
    elif len(buffer) != nbytes:
      raise ValueError(f"Invalid buffer length {len(buffer)}, expected {nbytes}")

    self._buffer = buffer
    self._fortran_order = fortran_order
    self._shape = shape
    self._wire_type = wire_type

  @property
  def buffer(self):
    return memoryview(self._buffer)

  @property
  def dtype(self):
    """
    The logical dtype corresponding to the array's wire type.

    Raises
      UnsupportedTypeError: If the wire type has no corresponding logical dtype.
    """

    return Dtype.from_wire_type(self._wire_type)

  @property
  def fortran_order(self):
    return self._fortran_order

  @property
  def nbytes(self):
    return len(self._buffer)

  @property
  def shape(self):
    return self._shape

  @property
  def wire_type(self):
    return self._wire_type

  def get_data(self, dtype: Optional[Dtype | np.dtype | str] = None, /) -> np.ndarray:
    """
    Returns a numpy array sharing the array's buffer.

    Parameters
      dtype: The dtype expected by the caller. A TypeError is raised if it differs from the array's dtype.
    """

    actual = self.dtype

    if dtype is not None:
      expected = dtype if isinstance(dtype, Dtype) else Dtype.from_numpy(dtype)

      if expected is not actual:
        raise TypeError(f"Requested dtype {expected} does not match array dtype {actual}")

    if not self._buffer:
      return np.empty(self._shape, dtype=actual.numpy_dtype)

    data = np.frombuffer(self._buffer, dtype=actual.numpy_dtype)
    return data.reshape(self._shape, order=('F' if self._fortran_order else 'C'))

  def copy(self):
    return NpyArray(self._shape, self._wire_type, buffer=bytearray(self._buffer), fortran_order=self._fortran_order)

  def view(self):
    return NpyArray(self._shape, self._wire_type, buffer=self._buffer, fortran_order=self._fortran_order)

  @classmethod
  def from_numpy(cls, arr: np.ndarray, /):
    """
    Creates a row-major array holding a copy of the given numpy array.
    """

    dtype = Dtype.from_numpy(arr.dtype)
    result = cls(arr.shape, dtype)

    if result.nbytes > 0:
      result.get_data()[...] = arr

    return result

  def __repr__(self):
    return f"{type(self).__name__}(shape={self._shape}, wire_type={self._wire_type}, fortran_order={self._fortran_order})"


__all__ = [
  'NpyArray'
]
