class NpyError(Exception):
  """
  Base class of all errors raised by this package.
  """


class NpyIOError(NpyError, OSError):
  """
  A file could not be opened, read or written.
  """


class FormatError(NpyError, ValueError):
  """
  The header is malformed or uses an unsupported part of the format.
  """


class UnsupportedTypeError(NpyError, TypeError):
  """
  A wire kind-code and word size pair has no corresponding logical dtype.
  """

  def __init__(self, kind: str, word_size: int):
    super().__init__(f"Unsupported type '{kind}' with word size {word_size}")

    self.kind = kind
    self.word_size = word_size


class CorruptionError(NpyError):
  """
  The file holds fewer bytes than its header declares.
  """

  def __init__(self, message: str, *, expected: int, actual: int):
    super().__init__(f"{message}: expected {expected} bytes, got {actual}")

    self.actual = actual
    self.expected = expected


__all__ = [
  'CorruptionError',
  'FormatError',
  'NpyError',
  'NpyIOError',
  'UnsupportedTypeError'
]
