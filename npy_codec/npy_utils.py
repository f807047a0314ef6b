import re
import struct

from .dtype import WireType
from .errors import FormatError
from .shared import ArraySpec
from .utils import ArrayShape, endianness_char


MAGIC_PREFIX = b"\x93NUMPY"
MAGIC_LEN = len(MAGIC_PREFIX) + 2
ARRAY_ALIGN = 16
FORMAT_VERSION = (1, 0)

# Length field format per (major, minor) version accepted on read.
HEADER_LENGTH_FORMATS = {
  (1, 0): "<H",
  (2, 0): "<I",
  (3, 0): "<I"
}

LITTLE_ENDIAN_CHARS = "<|"
KIND_CHARS = "fiubc?"

DESCR_REGEX = re.compile(r"'?\s*:\s*'(.)(.)([^']*)'")
FORTRAN_ORDER_REGEX = re.compile(r"'?\s*:\s*(\w+)")
DIGITS_REGEX = re.compile(r"[0-9]+")


def format_shape(shape: ArrayShape, /):
  # ()     -> "()"
  # (1,)   -> "(1,)"
  # (1, 2) -> "(1, 2)"
  if len(shape) == 1:
    return f"({shape[0]},)"

  return "(" + ", ".join(str(dim) for dim in shape) + ")"

def encode_npy_header(*, fortran_order: bool = False, shape: ArrayShape, wire_type: WireType):
  """
  Encodes the preamble and header dictionary of a version 1.0 .npy file.

  The dictionary is padded with spaces and terminated by a newline so that the preamble and dictionary together span a multiple of ARRAY_ALIGN bytes.

  Parameters
    fortran_order: Whether the payload is stored in column-major order.
    shape: The shape of the array.
    wire_type: The kind-code and word size of the array's scalars.
  """

  header = "{{'descr': '{}{}', 'fortran_order': {}, 'shape': {}, }}".format(
    endianness_char(),
    wire_type,
    ("True" if fortran_order else "False"),
    format_shape(shape)
  ).encode('latin1')

  padlen = ARRAY_ALIGN - (MAGIC_LEN + struct.calcsize("<H") + len(header)) % ARRAY_ALIGN - 1
  hlen = len(header) + padlen + 1

  if hlen > 0xffff:
    raise ValueError(f"Header length {hlen} does not fit in a version {FORMAT_VERSION[0]}.{FORMAT_VERSION[1]} file")

  header_prefix = MAGIC_PREFIX + bytes(FORMAT_VERSION) + struct.pack("<H", hlen)
  return header_prefix + header + (b" " * padlen) + b"\n"

def find_keyword(header: str, keyword: str, /):
  index = header.find(keyword)

  if index < 0:
    raise FormatError(f"Failed to find header keyword: '{keyword}'")

  return index + len(keyword)

def decode_npy_header(header: bytes | str, /):
  """
  Decodes the dictionary text of a .npy header.

  Parameters
    header: The dictionary text, with or without its padding.

  Returns
    An ArraySpec describing the payload.

  Raises
    FormatError: If a keyword is missing, a value is malformed or the payload is not little-endian.
  """

  if isinstance(header, bytes):
    header = header.decode('latin1')

  # Fortran order
  match = FORTRAN_ORDER_REGEX.match(header, find_keyword(header, "fortran_order"))

  if (match is None) or (match.group(1) not in ("True", "False")):
    raise FormatError("Invalid value for header keyword: 'fortran_order'")

  fortran_order = (match.group(1) == "True")

  # Shape
  shape_start = header.find("(")
  shape_end = header.find(")", shape_start + 1) if shape_start >= 0 else -1

  if shape_end < 0:
    raise FormatError("Failed to find header keyword: '(' or ')'")

  shape = tuple(int(dim) for dim in DIGITS_REGEX.findall(header, shape_start + 1, shape_end))

  # Endianness, kind and word size
  match = DESCR_REGEX.match(header, find_keyword(header, "descr"))

  if match is None:
    raise FormatError("Invalid value for header keyword: 'descr'")

  endianness, kind, word_size = match.groups()

  if endianness not in LITTLE_ENDIAN_CHARS:
    raise FormatError(f"Unsupported byte order '{endianness}', only little-endian payloads are supported")

  if kind not in KIND_CHARS:
    raise FormatError(f"Unsupported kind '{kind}' in header keyword 'descr'")

  if (DIGITS_REGEX.fullmatch(word_size) is None) or (int(word_size) < 1):
    raise FormatError(f"Invalid word size in header keyword 'descr': '{word_size}'")

  return ArraySpec(
    fortran_order=fortran_order,
    shape=shape,
    wire_type=WireType(kind=kind, word_size=int(word_size))
  )


__all__ = [
  'decode_npy_header',
  'encode_npy_header'
]
