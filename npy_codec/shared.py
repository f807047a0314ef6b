from dataclasses import dataclass

from .dtype import WireType
from .utils import ArrayShape


@dataclass(frozen=True, kw_only=True)
class ArraySpec:
  fortran_order: bool
  shape: ArrayShape
  wire_type: WireType
