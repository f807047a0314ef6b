import math
import sys
from typing import IO


ArrayShape = tuple[int, ...]


def endianness_char():
  return '<' if sys.byteorder == 'little' else '>'

def num_elements(shape: ArrayShape, /):
  return math.prod(shape)

def read_exact(file: IO[bytes], size: int, /):
  chunks: list[bytes] = []
  remaining = size

  while remaining > 0:
    chunk = file.read(remaining)

    if not chunk:
      break

    chunks.append(chunk)
    remaining -= len(chunk)

  return b"".join(chunks)

def readinto_exact(file: IO[bytes], buffer: memoryview, /):
  offset = 0

  while offset < len(buffer):
    count = file.readinto(buffer[offset:]) # type: ignore

    if not count:
      break

    offset += count

  return offset
