from .array import NpyArray
from .dtype import Dtype, WireType
from .errors import CorruptionError, FormatError, NpyError, NpyIOError, UnsupportedTypeError
from .npy import load, read_array, read_header, save, write_array
from .npy_utils import decode_npy_header, encode_npy_header
from .shared import ArraySpec


__all__ = [
  'ArraySpec',
  'CorruptionError',
  'decode_npy_header',
  'Dtype',
  'encode_npy_header',
  'FormatError',
  'load',
  'NpyArray',
  'NpyError',
  'NpyIOError',
  'read_array',
  'read_header',
  'save',
  'UnsupportedTypeError',
  'WireType',
  'write_array'
]
