import struct

import numpy as np
import pytest

from segtensor.compressed_tensor import CompressedTensor
from segtensor.tensor import Tensor, TensorError
from segtensor.tensor_stream import (
    CTS_MAGIC,
    CompressedTensorStream,
    FloatTensorStream,
    open_tensor_stream,
)


def _tensor(width, height, maps, start=0.0):
    tensor = Tensor(1, width, height, maps)
    tensor.data[:] = np.arange(tensor.elements, dtype=np.float32) + start
    return tensor


@pytest.fixture
def tensors():
    return [_tensor(3, 2, 2), _tensor(3, 2, 1, 10.0), _tensor(4, 1, 2, 20.0)]


@pytest.fixture
def float_file(tmp_path, tensors):
    path = tmp_path / "data.Tensor"
    with open(path, "wb") as stream:
        for tensor in tensors:
            tensor.serialize(stream)
    return path


@pytest.fixture
def compressed_file(tmp_path, tensors):
    path = tmp_path / "data.cts"
    with open(path, "wb") as stream:
        stream.write(struct.pack("<Q", CTS_MAGIC))
        for tensor in tensors:
            CompressedTensor.from_tensor(tensor).serialize(stream)
    return path


def test_float_stream_loads_all_tensors(float_file, tensors):
    stream = FloatTensorStream()
    assert stream.load_file(float_file) == len(tensors)
    assert stream.tensor_count == len(tensors)
    assert [stream.width(i) for i in range(3)] == [t.width for t in tensors]
    assert [stream.height(i) for i in range(3)] == [t.height for t in tensors]
    assert [stream.maps(i) for i in range(3)] == [t.maps for t in tensors]


def test_float_stream_copy_sample(float_file, tensors):
    stream = FloatTensorStream()
    stream.load_file(float_file)
    target = Tensor(2, 3, 2, 2)
    assert stream.copy_sample(0, 0, target, 1)
    np.testing.assert_array_equal(target.array[1], tensors[0].array[0])
    assert np.all(target.array[0] == 0)


def test_float_stream_copy_out_of_range(float_file):
    stream = FloatTensorStream()
    stream.load_file(float_file)
    assert not stream.copy_sample(5, 0, Tensor(1, 3, 2, 2), 0)


def test_float_stream_copy_mismatched_maps(float_file):
    stream = FloatTensorStream()
    stream.load_file(float_file)
    assert not stream.copy_sample(1, 0, Tensor(1, 3, 2, 2), 0)


def test_compressed_stream_loads_all_tensors(compressed_file, tensors):
    stream = CompressedTensorStream()
    assert stream.load_file(compressed_file) == len(tensors)
    assert stream.max_elements == max(t.elements for t in tensors)
    assert [stream.width(i) for i in range(3)] == [t.width for t in tensors]


def test_compressed_stream_copy_sample_pads_larger_target(compressed_file, tensors):
    stream = CompressedTensorStream()
    stream.load_file(compressed_file)
    target = Tensor(1, 5, 3, 2)
    target.clear(9.0)
    assert stream.copy_sample(2, 0, target, 0)
    np.testing.assert_array_equal(target.array[0, :, :1, :4], tensors[2].array[0])
    assert np.all(target.array[0, :, 1:, :] == 0)
    assert np.all(target.array[0, :, :, 4:] == 0)


def test_compressed_stream_copy_out_of_range(compressed_file):
    stream = CompressedTensorStream()
    stream.load_file(compressed_file)
    assert not stream.copy_sample(3, 0, Tensor(1, 3, 2, 2), 0)


def test_compressed_stream_rejects_wrong_magic(float_file):
    with pytest.raises(TensorError):
        CompressedTensorStream().load_file(float_file)


def test_open_detects_float_stream(float_file, tensors):
    stream = open_tensor_stream(float_file)
    assert isinstance(stream, FloatTensorStream)
    assert stream.tensor_count == len(tensors)


def test_open_detects_compressed_stream(compressed_file, tensors):
    stream = open_tensor_stream(compressed_file)
    assert isinstance(stream, CompressedTensorStream)
    target = Tensor(1, 3, 2, 1)
    assert stream.copy_sample(1, 0, target, 0)
    np.testing.assert_array_equal(target.data, tensors[1].data)


def test_open_empty_file_gives_empty_float_stream(tmp_path):
    path = tmp_path / "empty.Tensor"
    path.write_bytes(b"")
    stream = open_tensor_stream(path)
    assert isinstance(stream, FloatTensorStream)
    assert stream.tensor_count == 0


def test_open_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        open_tensor_stream(tmp_path / "missing.Tensor")