"""Files holding a sequence of serialized tensors, plain or compressed."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from os import PathLike
from typing import Union

from segtensor.compressed_tensor import CompressedTensor
from segtensor.tensor import Tensor, TensorError

PathType = Union[str, "PathLike[str]"]

CTS_MAGIC = int.from_bytes(b"CTSTREAM", "little")
_MAGIC = struct.Struct("<Q")


class TensorStream(ABC):
    """A list of tensors loaded from one file."""

    def __init__(self) -> None:
        self.tensors: list = []

    @abstractmethod
    def load_file(self, path: PathType) -> int:
        """Append the tensors stored in ``path``; return how many are held."""

    @property
    def tensor_count(self) -> int:
        """Number of tensors held."""
        return len(self.tensors)

    def width(self, index: int) -> int:
        """Width of tensor ``index``."""
        return self.tensors[index].width

    def height(self, index: int) -> int:
        """Height of tensor ``index``."""
        return self.tensors[index].height

    def maps(self, index: int) -> int:
        """Number of maps of tensor ``index``."""
        return self.tensors[index].maps

    @abstractmethod
    def copy_sample(self, source: int, source_sample: int,
                    target: Tensor, target_sample: int) -> bool:
        """Copy one sample of tensor ``source`` into ``target``; report success."""


class FloatTensorStream(TensorStream):
    """Tensors stored back to back in the plain float format."""

    def load_file(self, path: PathType) -> int:
        with open(path, "rb") as stream:
            while True:
                tensor = Tensor().deserialize(stream)
                if tensor.elements == 0:
                    break
                self.tensors.append(tensor)
        return len(self.tensors)

    def copy_sample(self, source: int, source_sample: int,
                    target: Tensor, target_sample: int) -> bool:
        if not 0 <= source < len(self.tensors):
            return False
        return Tensor.copy_sample(self.tensors[source], source_sample,
                                  target, target_sample)


class CompressedTensorStream(TensorStream):
    """Run-length compressed tensors following a magic number."""

    def __init__(self) -> None:
        super().__init__()
        self.max_elements = 0

    def load_file(self, path: PathType) -> int:
        with open(path, "rb") as stream:
            magic = stream.read(_MAGIC.size)
            if len(magic) != _MAGIC.size or _MAGIC.unpack(magic)[0] != CTS_MAGIC:
                raise TensorError("Wrong magic at start of stream!")
            while True:
                tensor = CompressedTensor.deserialize(stream)
                if tensor.elements == 0:
                    break
                self.max_elements = max(self.max_elements, tensor.elements)
                self.tensors.append(tensor)
        return len(self.tensors)

    def copy_sample(self, source: int, source_sample: int,
                    target: Tensor, target_sample: int) -> bool:
        if not 0 <= source < len(self.tensors):
            return False
        unpacked = self.tensors[source].decompress()
        return Tensor.copy_sample(unpacked, source_sample, target, target_sample)


def open_tensor_stream(path: PathType) -> TensorStream:
    """Load ``path`` as a compressed stream if it starts with the magic, else as floats."""
    with open(path, "rb") as stream:
        head = stream.read(_MAGIC.size)
    if len(head) == _MAGIC.size and _MAGIC.unpack(head)[0] == CTS_MAGIC:
        result: TensorStream = CompressedTensorStream()
    else:
        result = FloatTensorStream()
    result.load_file(path)
    return result