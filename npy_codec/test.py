import contextlib
import io
import os
import struct
import unittest
from io import BytesIO
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase

import numpy as np

from . import (CorruptionError, Dtype, FormatError, NpyArray, NpyIOError,
               UnsupportedTypeError, WireType, decode_npy_header,
               encode_npy_header, load, read_array, save, write_array)
from .__main__ import main
from .npy_utils import format_shape
from .utils import endianness_char


SHAPES = [(), (1,), (5,), (2, 3), (4, 1, 2)]


def make_data(shape, dtype: Dtype):
  return np.arange(int(np.prod(shape))).astype(dtype.numpy_dtype).reshape(shape)


class UnseekableBytesIO(BytesIO):
  def seekable(self):
    return False


class HeaderEncodeTest(TestCase):
  def test_concrete_header(self):
    header = encode_npy_header(shape=(2, 3), wire_type=Dtype.Float32.wire_type)
    text = f"{{'descr': '{endianness_char()}f4', 'fortran_order': False, 'shape': (2, 3), }}".encode()

    self.assertEqual(header[:8], b"\x93NUMPY\x01\x00")

    hlen, = struct.unpack("<H", header[8:10])

    self.assertEqual(hlen, 70)
    self.assertEqual(len(header), 10 + hlen)
    self.assertEqual(header[10:10 + len(text)], text)
    self.assertEqual(header[10 + len(text):-1], b" " * 10)
    self.assertEqual(header[-1:], b"\n")

  def test_alignment(self):
    for dtype in Dtype:
      for shape in [*SHAPES, (123456, 7, 89), (0,)]:
        header = encode_npy_header(shape=shape, wire_type=dtype.wire_type)
        hlen, = struct.unpack("<H", header[8:10])

        self.assertEqual(len(header), 10 + hlen)
        self.assertEqual((10 + hlen) % 16, 0)
        self.assertEqual(header[-1:], b"\n")
        self.assertNotIn(b"\n", header[10:-1])

  def test_shape_text(self):
    self.assertEqual(format_shape(()), "()")
    self.assertEqual(format_shape((5,)), "(5,)")
    self.assertEqual(format_shape((2, 3)), "(2, 3)")
    self.assertEqual(format_shape((4, 1, 2)), "(4, 1, 2)")

  def test_fortran_order(self):
    header = encode_npy_header(fortran_order=True, shape=(2, 3), wire_type=Dtype.Int64.wire_type)
    self.assertIn(b"'fortran_order': True", header)

  def test_truthy_fortran_order(self):
    header = encode_npy_header(fortran_order=1, shape=(2, 3), wire_type=Dtype.Int64.wire_type)

    self.assertIn(b"'fortran_order': True,", header)
    self.assertTrue(decode_npy_header(header[10:]).fortran_order)

  def test_readable_by_numpy(self):
    arr = np.random.rand(3, 4).astype('<f4')
    file = BytesIO(encode_npy_header(shape=arr.shape, wire_type=Dtype.Float32.wire_type) + arr.tobytes())

    self.assertTrue(np.array_equal(np.load(file), arr))


class HeaderDecodeTest(TestCase):
  def test_default(self):
    spec = decode_npy_header(b"{'descr': '<f4', 'fortran_order': False, 'shape': (2, 3), }     \n")

    self.assertEqual(spec.shape, (2, 3))
    self.assertEqual(spec.wire_type, WireType(kind='f', word_size=4))
    self.assertFalse(spec.fortran_order)

  def test_shapes(self):
    self.assertEqual(decode_npy_header("{'descr': '<i8', 'fortran_order': False, 'shape': (), }").shape, ())
    self.assertEqual(decode_npy_header("{'descr': '<i8', 'fortran_order': False, 'shape': (5,), }").shape, (5,))
    self.assertEqual(decode_npy_header("{'descr': '<i8', 'fortran_order': False, 'shape': (40, 1, 2), }").shape, (40, 1, 2))

  def test_fortran_order(self):
    spec = decode_npy_header("{'descr': '<f8', 'fortran_order': True, 'shape': (3, 4), }")
    self.assertTrue(spec.fortran_order)

  def test_not_applicable_byte_order(self):
    spec = decode_npy_header("{'descr': '|u1', 'fortran_order': False, 'shape': (7,), }")
    self.assertEqual(spec.wire_type, WireType(kind='u', word_size=1))

  def test_spacing_and_key_order(self):
    spec = decode_npy_header("{'shape':(2,3),'fortran_order':False,'descr':'<i8'}")

    self.assertEqual(spec.shape, (2, 3))
    self.assertEqual(spec.wire_type, WireType(kind='i', word_size=8))
    self.assertFalse(spec.fortran_order)

  def test_numpy_header(self):
    for arr in [np.zeros((3, 4)), np.asfortranarray(np.zeros((3, 4), dtype='u2')), np.zeros((), dtype=bool)]:
      file = BytesIO()
      np.save(file, arr)

      spec = decode_npy_header(file.getvalue()[10:])

      self.assertEqual(spec.shape, arr.shape)
      self.assertEqual(spec.wire_type, WireType(kind=arr.dtype.kind, word_size=arr.dtype.itemsize))
      self.assertEqual(spec.fortran_order, arr.ndim > 1 and not arr.flags.c_contiguous)

  def test_missing_keywords(self):
    with self.assertRaisesRegex(FormatError, "fortran_order"):
      decode_npy_header("{'descr': '<f4', 'shape': (2, 3), }")

    with self.assertRaisesRegex(FormatError, "descr"):
      decode_npy_header("{'fortran_order': False, 'shape': (2, 3), }")

    with self.assertRaisesRegex(FormatError, r"'\(' or '\)'"):
      decode_npy_header("{'descr': '<f4', 'fortran_order': False, 'shape': 2, }")

  def test_big_endian(self):
    with self.assertRaises(FormatError):
      decode_npy_header("{'descr': '>f4', 'fortran_order': False, 'shape': (2, 3), }")

  def test_unsupported_kind(self):
    with self.assertRaisesRegex(FormatError, "'U'"):
      decode_npy_header("{'descr': '<U5', 'fortran_order': False, 'shape': (3,), }")

    with self.assertRaises(FormatError):
      decode_npy_header("{'descr': '|O', 'fortran_order': False, 'shape': (3,), }")

  def test_malformed_values(self):
    with self.assertRaises(FormatError):
      decode_npy_header("{'descr': '<f', 'fortran_order': False, 'shape': (2, 3), }")

    with self.assertRaises(FormatError):
      decode_npy_header("{'descr': '<f4', 'fortran_order': 0, 'shape': (2, 3), }")


class DtypeTest(TestCase):
  def test_bijection(self):
    for dtype in Dtype:
      self.assertIs(Dtype.from_wire_type(dtype.wire_type), dtype)
      self.assertIs(Dtype.from_numpy(dtype.numpy_dtype), dtype)
      self.assertEqual(dtype.byte_size, dtype.numpy_dtype.itemsize)

  def test_encoded_header(self):
    for dtype in Dtype:
      header = encode_npy_header(shape=(2,), wire_type=dtype.wire_type)
      self.assertIs(Dtype.from_wire_type(decode_npy_header(header[10:]).wire_type), dtype)

  def test_unsupported(self):
    with self.assertRaisesRegex(UnsupportedTypeError, "'f' with word size 2"):
      Dtype.from_wire_type(WireType(kind='f', word_size=2))

    with self.assertRaises(UnsupportedTypeError):
      Dtype.from_wire_type(WireType(kind='c', word_size=8))

    with self.assertRaises(UnsupportedTypeError):
      Dtype.from_numpy('>f4')

    with self.assertRaises(UnsupportedTypeError):
      Dtype.from_numpy('f2')

  def test_names(self):
    self.assertEqual(str(Dtype.Float32), "Float32")
    self.assertEqual(str(Dtype.UInt16.wire_type), "u2")


class NpyArrayTest(TestCase):
  def test_default(self):
    arr = NpyArray((2, 3), Dtype.Int32)

    self.assertEqual(arr.shape, (2, 3))
    self.assertEqual(arr.nbytes, 24)
    self.assertEqual(arr.dtype, Dtype.Int32)
    self.assertFalse(arr.fortran_order)
    self.assertEqual(bytes(arr.buffer), bytes(24))

  def test_scalar(self):
    arr = NpyArray((), Dtype.Float64)

    self.assertEqual(arr.nbytes, 8)
    self.assertEqual(arr.get_data().shape, ())

  def test_view_aliases_buffer(self):
    arr = NpyArray((4,), Dtype.UInt8)
    view = arr.view()
    copy = arr.copy()

    view.get_data()[2] = 7

    self.assertEqual(arr.get_data()[2], 7)
    self.assertEqual(copy.get_data()[2], 0)

    copy.get_data()[0] = 1

    self.assertEqual(arr.get_data()[0], 0)

  def test_typed_view(self):
    arr = NpyArray((3,), Dtype.Float32)

    self.assertEqual(arr.get_data(Dtype.Float32).dtype, np.dtype('f4'))
    self.assertEqual(arr.get_data('f4').dtype, np.dtype('f4'))

    with self.assertRaises(TypeError):
      arr.get_data(Dtype.Int32)

  def test_fortran_order(self):
    arr = NpyArray((2, 3), Dtype.Float32, fortran_order=True)
    arr.buffer[:] = np.arange(6, dtype='<f4').tobytes()

    data = arr.get_data()

    self.assertTrue(np.array_equal(data, np.arange(6, dtype='f4').reshape((2, 3), order='F')))
    self.assertTrue(data.flags.f_contiguous)

  def test_unsupported_type(self):
    arr = NpyArray((2,), WireType(kind='c', word_size=8))

    self.assertEqual(arr.nbytes, 16)

    with self.assertRaises(UnsupportedTypeError):
      arr.dtype

  def test_invalid(self):
    with self.assertRaises(ValueError):
      NpyArray((2, -1), Dtype.Float32)

    with self.assertRaises(ValueError):
      NpyArray((2,), Dtype.Float32, buffer=bytearray(4))

  def test_from_numpy(self):
    data = np.asfortranarray(np.random.rand(3, 4))
    arr = NpyArray.from_numpy(data)

    self.assertFalse(arr.fortran_order)
    self.assertEqual(arr.dtype, Dtype.Float64)
    self.assertTrue(np.array_equal(arr.get_data(), data))


class SaveLoadTest(TestCase):
  def setUp(self):
    self._dir = TemporaryDirectory()
    self.path = Path(self._dir.name) / "arr.npy"

  def tearDown(self):
    self._dir.cleanup()

  def test_round_trip(self):
    for dtype in Dtype:
      for shape in SHAPES:
        data = make_data(shape, dtype)
        bytes_written = save(self.path, data.tobytes(), shape, dtype)

        arr = load(self.path)

        self.assertEqual(bytes_written, self.path.stat().st_size)
        self.assertEqual(arr.shape, shape)
        self.assertIs(arr.dtype, dtype)
        self.assertFalse(arr.fortran_order)
        self.assertEqual(bytes(arr.buffer), data.tobytes())
        self.assertTrue(np.array_equal(np.load(self.path), data))

  def test_numpy_array(self):
    data = np.random.rand(10, 3)
    save(self.path, data)

    self.assertTrue(np.array_equal(load(self.path).get_data(), data))

  def test_numpy_file(self):
    data = np.random.randint(0, 100, (6, 5), dtype='i8')
    np.save(self.path, data)

    arr = load(self.path)

    self.assertIs(arr.dtype, Dtype.Int64)
    self.assertTrue(np.array_equal(arr.get_data(), data))

  def test_numpy_fortran_file(self):
    data = np.asfortranarray(np.random.rand(3, 4, 5))
    np.save(self.path, data)

    arr = load(self.path)

    self.assertTrue(arr.fortran_order)
    self.assertTrue(np.array_equal(arr.get_data(), data))

  def test_numpy_version_2(self):
    data = np.random.rand(4, 2)

    with self.path.open("wb") as file:
      np.lib.format.write_array(file, data, version=(2, 0))

    self.assertTrue(np.array_equal(load(self.path).get_data(), data))

  def test_write_fortran_array(self):
    arr = NpyArray.from_numpy(np.random.rand(2, 3))
    fortran_arr = NpyArray(arr.shape, arr.wire_type, fortran_order=True)
    fortran_arr.get_data()[...] = arr.get_data()

    save(self.path, fortran_arr)
    loaded = load(self.path)

    self.assertFalse(loaded.fortran_order)
    self.assertEqual(bytes(loaded.buffer), bytes(arr.buffer))

  def test_overwrite(self):
    save(self.path, np.zeros(1000))
    bytes_written = save(self.path, np.zeros(2, dtype='u1'))

    self.assertEqual(self.path.stat().st_size, bytes_written)
    self.assertEqual(load(self.path).shape, (2,))

  def test_truncated_payload(self):
    save(self.path, np.random.rand(2, 3))

    with self.path.open("r+b") as file:
      file.truncate(self.path.stat().st_size - 1)

    with self.assertRaises(CorruptionError) as context:
      load(self.path)

    self.assertEqual(context.exception.expected, 48)
    self.assertEqual(context.exception.actual, 47)

  def test_truncated_header(self):
    save(self.path, np.random.rand(2, 3))

    with self.path.open("r+b") as file:
      file.truncate(20)

    with self.assertRaises(CorruptionError):
      load(self.path)

  def test_invalid_magic(self):
    self.path.write_bytes(b"\x93NUMPZ\x01\x00" + bytes(120))

    with self.assertRaises(FormatError):
      load(self.path)

  def test_big_endian_file(self):
    np.save(self.path, np.zeros(3, dtype='>f4'))

    with self.assertRaises(FormatError):
      load(self.path)

  def test_string_file(self):
    np.save(self.path, np.array(["hello", "world", "abcde"]))

    with self.assertRaises(FormatError):
      load(self.path)

  def test_missing_file(self):
    with self.assertLogs("npy_codec.npy", "ERROR"):
      with self.assertRaises(NpyIOError) as context:
        load(Path(self._dir.name) / "missing.npy")

    self.assertIsInstance(context.exception, OSError)
    self.assertIsInstance(context.exception.__cause__, FileNotFoundError)

  def test_unwritable_path(self):
    with self.assertRaises(NpyIOError):
      save(Path(self._dir.name) / "missing" / "arr.npy", np.zeros(3))

  def test_invalid_data(self):
    with self.assertRaises(ValueError):
      save(self.path, bytes(11), (3,), Dtype.Float32)

    with self.assertRaises(ValueError):
      save(self.path, bytes(12))

    with self.assertRaises(ValueError):
      save(self.path, np.zeros(3, dtype='f4'), dtype=Dtype.Int32)


class FileObjectTest(TestCase):
  def test_bytesio(self):
    data = np.random.rand(5, 2)
    file = BytesIO()

    bytes_written = write_array(file, data)

    self.assertEqual(bytes_written, len(file.getbuffer()))

    file.seek(0)
    self.assertTrue(np.array_equal(read_array(file).get_data(), data))

  def test_consecutive_records(self):
    first = np.arange(4, dtype='i4')
    second = np.ones((2, 2), dtype=bool)
    file = BytesIO()

    write_array(file, first)
    write_array(file, second)
    file.seek(0)

    self.assertTrue(np.array_equal(read_array(file).get_data(), first))
    self.assertTrue(np.array_equal(read_array(file).get_data(), second))

  def test_empty_axis(self):
    file = BytesIO()
    write_array(file, np.zeros((0, 6), dtype='f8'))
    file.seek(0)

    arr = read_array(file)

    self.assertEqual(arr.shape, (0, 6))
    self.assertEqual(arr.nbytes, 0)
    self.assertEqual(arr.get_data().shape, (0, 6))


  def test_oversized_shape(self):
    header = encode_npy_header(shape=(2 ** 40,), wire_type=Dtype.Float64.wire_type)

    with self.assertRaises(CorruptionError) as context:
      read_array(BytesIO(header + bytes(16)))

    self.assertEqual(context.exception.expected, 2 ** 43)
    self.assertEqual(context.exception.actual, 16)

  def test_unallocatable_shape(self):
    header = encode_npy_header(shape=(2 ** 70,), wire_type=Dtype.Float64.wire_type)

    with self.assertRaises(CorruptionError):
      read_array(BytesIO(header + bytes(16)))

    with self.assertRaises(CorruptionError):
      read_array(UnseekableBytesIO(header + bytes(16)))

  def test_unseekable_truncated_payload(self):
    file = BytesIO()
    write_array(file, np.zeros(4, dtype='i4'))

    with self.assertRaises(CorruptionError) as context:
      read_array(UnseekableBytesIO(file.getvalue()[:-1]))

    self.assertEqual(context.exception.actual, 15)


class CliTest(TestCase):
  def test_inspect(self):
    with TemporaryDirectory() as dir_path:
      valid_path = os.path.join(dir_path, "valid.npy")
      invalid_path = os.path.join(dir_path, "invalid.npy")

      save(valid_path, np.zeros((2, 3), dtype='u2'))
      Path(invalid_path).write_bytes(b"not an array")

      stdout = io.StringIO()

      with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(io.StringIO()):
        self.assertEqual(main(["inspect", valid_path]), 0)
        self.assertEqual(main(["inspect", invalid_path, valid_path]), 1)

      self.assertIn("shape=(2, 3) dtype=UInt16 descr=u2", stdout.getvalue())


if __name__ == '__main__':
  unittest.main()
