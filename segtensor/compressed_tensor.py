"""Run-length compressed tensors and their binary serialization.

The compressed form works on the little-endian float32 bytes of a tensor.
A run of at least two equal values becomes ``X Y <count> <4 value bytes>``.
Shorter runs are written as raw bytes, with every literal ``X`` doubled.
"""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator

import numpy as np

from segtensor.tensor import Tensor, TensorError

CHARS_PER_DATUM = 4
RL_MARKER = ord("X")
RL_DOUBLEMARKER = ord("X")
RL_RLE = ord("Y")
RL_BYTES = 1
RL_MAX = (1 << (8 * RL_BYTES)) - 3
RL_MIN = 1 + (5 + RL_BYTES) // CHARS_PER_DATUM

_HEADER = struct.Struct("<5Q")
_ESCAPED_MARKER = bytes((RL_MARKER, RL_DOUBLEMARKER))


class CompressionError(TensorError):
    """Raised when compressed data is malformed or does not match its shape."""


def _chunks(raw: bytes) -> Iterator[bytes]:
    return (raw[start:start + CHARS_PER_DATUM]
            for start in range(0, len(raw), CHARS_PER_DATUM))


def _emit(out: bytearray, run: int, symbol: bytes) -> None:
    if run == 0:
        return
    if run < RL_MIN:
        out += symbol.replace(bytes((RL_MARKER,)), _ESCAPED_MARKER) * run
    else:
        out += bytes((RL_MARKER, RL_RLE))
        out += run.to_bytes(RL_BYTES, "big")
        out += symbol


def compress_data(values: Iterable[float] | np.ndarray) -> bytes:
    """Run-length encode a sequence of float32 values."""
    array = np.ascontiguousarray(np.asarray(values, dtype="<f4").reshape(-1))
    out = bytearray()
    last = 0.0
    last_bytes = bytes(CHARS_PER_DATUM)
    run = 0
    for value, chunk in zip(array.tolist(), _chunks(array.tobytes())):
        same = value == last
        if same:
            run += 1
        if not same or run == RL_MAX:
            _emit(out, run, last_bytes)
            run = 0 if run == RL_MAX else 1
        last, last_bytes = value, chunk
    _emit(out, run, last_bytes)
    return bytes(out)


def decompress_data(data: bytes) -> np.ndarray:
    """Decode data produced by :func:`compress_data` into a float32 array."""
    out = bytearray()
    size = len(data)
    pos = 0
    while pos < size:
        byte = data[pos]
        pos += 1
        if byte != RL_MARKER:
            out.append(byte)
            continue
        if pos >= size:
            raise CompressionError("Truncated escape sequence")
        code = data[pos]
        pos += 1
        if code == RL_DOUBLEMARKER:
            out.append(RL_MARKER)
        elif code == RL_RLE:
            if pos + RL_BYTES + CHARS_PER_DATUM > size:
                raise CompressionError("Truncated run")
            run = int.from_bytes(data[pos:pos + RL_BYTES], "big")
            pos += RL_BYTES
            out += data[pos:pos + CHARS_PER_DATUM] * run
            pos += CHARS_PER_DATUM
        else:
            raise CompressionError("Incorrect encoding!")
    if len(out) % CHARS_PER_DATUM != 0:
        raise CompressionError("Compressed length wrong!")
    return np.frombuffer(bytes(out), dtype="<f4").astype(np.float32)


def _skip(stream: BinaryIO, count: int) -> None:
    seekable = getattr(stream, "seekable", None)
    if seekable is not None and seekable():
        stream.seek(count, io.SEEK_CUR)
    else:
        stream.read(count)


@dataclass(repr=False)
class CompressedTensor:
    """A tensor shape together with its run-length compressed data."""

    samples: int = 0
    width: int = 0
    height: int = 0
    maps: int = 0
    payload: bytes = b""

    @property
    def elements(self) -> int:
        """Number of elements of the uncompressed tensor."""
        return self.samples * self.width * self.height * self.maps

    @property
    def compressed_length(self) -> int:
        """Size of the compressed data in bytes."""
        return len(self.payload)

    @classmethod
    def from_tensor(cls, tensor: Tensor) -> "CompressedTensor":
        """Compress the data of ``tensor``."""
        payload = compress_data(tensor.data)
        if not payload:
            return cls()
        return cls(tensor.samples, tensor.width, tensor.height, tensor.maps, payload)

    def decompress(self) -> Tensor:
        """Return the uncompressed tensor."""
        values = decompress_data(self.payload)
        if values.size != self.elements:
            raise CompressionError("Decompressed size mismatch!")
        tensor = Tensor(self.samples, self.width, self.height, self.maps)
        if values.size:
            tensor.data[:] = values
        return tensor

    def serialize(self, stream: BinaryIO) -> None:
        """Write five little-endian uint64 fields (samples, width, height,
        maps, compressed length) followed by the compressed bytes."""
        stream.write(_HEADER.pack(self.samples, self.width, self.height,
                                  self.maps, self.compressed_length))
        if self.elements > 0:
            stream.write(self.payload)

    @classmethod
    def deserialize(cls, stream: BinaryIO, head_only: bool = False) -> "CompressedTensor":
        """Read a tensor written by :meth:`serialize`.

        An exhausted stream gives an empty tensor.  With ``head_only`` the
        shape is read and the compressed bytes are skipped.
        """
        header = stream.read(_HEADER.size)
        if not header:
            return cls()
        if len(header) < _HEADER.size:
            raise CompressionError("Truncated compressed tensor header")
        samples, width, height, maps, length = _HEADER.unpack(header)
        if length == 0:
            return cls()
        if head_only:
            _skip(stream, length)
            return cls(samples, width, height, maps, b"")
        payload = stream.read(length)
        if len(payload) < length:
            raise CompressionError("Truncated compressed tensor data")
        return cls(samples, width, height, maps, payload)

    def __repr__(self) -> str:
        return f"C({self.samples}s@{self.width}x{self.height}x{self.maps}m)"