import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from .dtype import Dtype
from .errors import NpyError, UnsupportedTypeError
from .npy import read_header
from .utils import num_elements


logger = logging.getLogger("npy_codec")


def setup_logging(level: Optional[str] = None):
  logging.basicConfig(
    level=(level or os.getenv("LOGLEVEL", "WARNING")).upper(),
    format="%(asctime)s [%(levelname)s][%(name)s] - %(message)s"
  )

def cmd_inspect(args: argparse.Namespace):
  status = 0

  for path in args.files:
    try:
      with open(path, "rb") as file:
        spec = read_header(file)
    except (NpyError, OSError) as e:
      print(f"{path}: error: {e}", file=sys.stderr)
      status = 1
      continue

    try:
      dtype = str(Dtype.from_wire_type(spec.wire_type))
    except UnsupportedTypeError:
      dtype = "unsupported"

    nbytes = num_elements(spec.shape) * spec.wire_type.word_size
    print(f"{path}: shape={spec.shape} dtype={dtype} descr={spec.wire_type} fortran_order={spec.fortran_order} nbytes={nbytes}")

  return status

def main(argv: Optional[Sequence[str]] = None):
  parser = argparse.ArgumentParser(prog="npy-codec", description="Inspect .npy array files.")
  parser.add_argument("--log-level", help="Logging level, defaults to $LOGLEVEL or WARNING")

  subparsers = parser.add_subparsers(dest="command", required=True)

  p = subparsers.add_parser("inspect", help="Print the decoded header of each file")
  p.add_argument("files", nargs="+")
  p.set_defaults(func=cmd_inspect)

  args = parser.parse_args(argv)
  setup_logging(args.log_level)

  logger.debug("Running command %r", args.command)
  return args.func(args)


if __name__ == "__main__":
  sys.exit(main())
