import io
import logging
import os
import struct
from typing import IO, Optional

import numpy as np

from .array import NpyArray
from .dtype import Dtype
from .errors import CorruptionError, FormatError, NpyIOError
from .npy_utils import HEADER_LENGTH_FORMATS, MAGIC_LEN, MAGIC_PREFIX, decode_npy_header, encode_npy_header
from .shared import ArraySpec
from .utils import ArrayShape, num_elements, read_exact, readinto_exact


logger = logging.getLogger(__name__)

PathLike = str | os.PathLike[str]


def read_header(file: IO[bytes], /) -> ArraySpec:
  """
  Reads the preamble and header dictionary of a .npy file, leaving the file positioned at the start of the payload.
  """

  preamble = read_exact(file, MAGIC_LEN)

  if len(preamble) < MAGIC_LEN:
    raise CorruptionError("Truncated preamble", expected=MAGIC_LEN, actual=len(preamble))
  if not preamble.startswith(MAGIC_PREFIX):
    raise FormatError("Invalid magic string")

  version = (preamble[-2], preamble[-1])
  length_format = HEADER_LENGTH_FORMATS.get(version)

  if length_format is None:
    raise FormatError(f"Unsupported format version {version[0]}.{version[1]}")

  length_size = struct.calcsize(length_format)
  length_data = read_exact(file, length_size)

  if len(length_data) < length_size:
    raise CorruptionError("Truncated header length", expected=length_size, actual=len(length_data))

  hlen, = struct.unpack(length_format, length_data)
  header = read_exact(file, hlen)

  if len(header) < hlen:
    raise CorruptionError("Truncated header", expected=hlen, actual=len(header))
  if not header.endswith(b"\n"):
    raise FormatError("Header does not end with a newline")

  return decode_npy_header(header)

def read_array(file: IO[bytes], /):
  """
  Reads an array from a binary file positioned at the start of a .npy record.

  Parameters
    file: The input binary file.

  Raises
    CorruptionError: If the file holds fewer bytes than declared by its header.
    FormatError: If the header is malformed or describes a big-endian payload.
  """

  spec = read_header(file)
  nbytes = num_elements(spec.shape) * spec.wire_type.word_size

  if file.seekable():
    position = file.tell()
    available = file.seek(0, io.SEEK_END) - position
    file.seek(position)

    if available < nbytes:
      raise CorruptionError("Truncated payload", expected=nbytes, actual=available)

  try:
    arr = NpyArray(spec.shape, spec.wire_type, fortran_order=spec.fortran_order)
  except (MemoryError, OverflowError):
    raise CorruptionError("Unable to allocate payload", expected=nbytes, actual=0) from None

  nread = readinto_exact(file, arr.buffer)

  if nread != arr.nbytes:
    raise CorruptionError("Truncated payload", expected=arr.nbytes, actual=nread)

  return arr

def load(path: PathLike, /):
  """
  Loads an array from a .npy file.

  Parameters
    path: The path of the file.

  Raises
    CorruptionError: If the file holds fewer bytes than declared by its header.
    FormatError: If the header is malformed or describes a big-endian payload.
    NpyIOError: If the file cannot be opened or read.
  """

  try:
    file = open(path, "rb")
  except OSError as e:
    logger.error("Unable to open %s: %s", path, e)
    raise NpyIOError(f"Unable to open file {os.fspath(path)!r}") from e

  with file:
    try:
      arr = read_array(file)
    except CorruptionError as e:
      logger.error("Failed to load %s: %s", path, e)
      raise
    except OSError as e:
      logger.error("Failed to read %s: %s", path, e)
      raise NpyIOError(f"Failed to read file {os.fspath(path)!r}") from e

  logger.debug("Loaded %s: shape=%s, type=%s, fortran_order=%s, %d bytes", path, arr.shape, arr.wire_type, arr.fortran_order, arr.nbytes)
  return arr


def get_payload(data: object, /, *, dtype: Optional[Dtype | np.dtype | str], shape: Optional[ArrayShape]):
  if dtype is not None and not isinstance(dtype, Dtype):
    dtype = Dtype.from_numpy(dtype)

  if isinstance(data, NpyArray):
    data = data.get_data()

  if isinstance(data, np.ndarray):
    data_dtype = Dtype.from_numpy(data.dtype)

    if dtype is None:
      dtype = data_dtype
    elif dtype is not data_dtype:
      raise ValueError("Invalid dtype")

    if shape is None:
      shape = data.shape
    elif num_elements(shape) != data.size:
      raise ValueError("Invalid shape")

    payload = memoryview(np.ascontiguousarray(data).reshape(-1).view(np.uint8))
  else:
    if dtype is None:
      raise ValueError("Unknown dtype")
    if shape is None:
      raise ValueError("Unknown shape")

    payload = memoryview(data).cast('B') # type: ignore

  shape = tuple(int(dim) for dim in shape)

  if any(dim < 0 for dim in shape):
    raise ValueError(f"Invalid shape {shape}")

  nbytes = num_elements(shape) * dtype.byte_size

  if len(payload) < nbytes:
    raise ValueError(f"Data holds {len(payload)} bytes, expected at least {nbytes}")

  return payload[:nbytes], shape, dtype

def write_array(
  file: IO[bytes],
  data: object,
  /,
  *,
  dtype: Optional[Dtype | np.dtype | str] = None,
  shape: Optional[ArrayShape] = None
):
  """
  Writes a row-major .npy record to a binary file.

  Parameters
    data: The array to write. Either a numpy array, an NpyArray or any C-contiguous object supporting the buffer protocol. Arrays stored in Fortran order are written in row-major order.
    dtype: The logical dtype of the scalars. Required unless data is an array.
    file: The output binary file.
    shape: The shape of the array. Required unless data is an array.

  Returns
    The number of bytes written.
  """

  payload, shape, dtype = get_payload(data, dtype=dtype, shape=shape)
  header = encode_npy_header(shape=shape, wire_type=dtype.wire_type)

  bytes_written = file.write(header)
  bytes_written += file.write(payload)

  if bytes_written != len(header) + len(payload):
    raise NpyIOError(f"Short write: wrote {bytes_written} of {len(header) + len(payload)} bytes")

  return bytes_written

def save(
  path: PathLike,
  data: object,
  /,
  shape: Optional[ArrayShape] = None,
  dtype: Optional[Dtype | np.dtype | str] = None
):
  """
  Saves an array to a .npy file, replacing any existing content.

  Parameters
    data: The array to save. See write_array().
    dtype: The logical dtype of the scalars. Required unless data is an array.
    path: The path of the file.
    shape: The shape of the array. Required unless data is an array.

  Returns
    The number of bytes written.

  Raises
    NpyIOError: If the file cannot be opened or written.
  """

  payload, shape, dtype = get_payload(data, dtype=dtype, shape=shape)

  try:
    file = open(path, "wb")
  except OSError as e:
    logger.error("Unable to open %s for writing: %s", path, e)
    raise NpyIOError(f"Unable to open file {os.fspath(path)!r} for writing") from e

  try:
    with file:
      bytes_written = write_array(file, payload, dtype=dtype, shape=shape)
  except NpyIOError as e:
    logger.error("Failed to save %s: %s", path, e)
    raise
  except OSError as e:
    logger.error("Failed to write %s: %s", path, e)
    raise NpyIOError(f"Failed to write file {os.fspath(path)!r}") from e

  logger.debug("Saved %s: shape=%s, dtype=%s, %d bytes", path, shape, dtype, bytes_written)
  return bytes_written


__all__ = [
  'load',
  'read_array',
  'read_header',
  'save',
  'write_array'
]
