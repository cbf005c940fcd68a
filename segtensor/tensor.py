"""Four-dimensional float tensors stored in sample-map-row-column order."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import BinaryIO

import numpy as np

DATUM = np.float32
_HEADER = struct.Struct("<4Q")
_DATUM_BYTES = np.dtype(DATUM).itemsize


class TensorError(Exception):
    """Raised when a tensor cannot be read, written or reshaped."""


@dataclass(frozen=True)
class TensorStats:
    """Summary statistics over every element of a tensor."""

    minimum: float
    maximum: float
    average: float
    l2_norm: float
    variance: float


def _mchar_from_datum(values: np.ndarray) -> np.ndarray:
    """Map values in [-1, 1] onto the byte range 0..255."""
    scaled = (values.astype(np.float64) + 1.0) * 127.5
    return np.clip(scaled, 0.0, 255.0).astype(np.uint8)


def _skip(stream: BinaryIO, count: int) -> None:
    if count <= 0:
        return
    seekable = getattr(stream, "seekable", None)
    if seekable is not None and seekable():
        stream.seek(count, io.SEEK_CUR)
    else:
        stream.read(count)


class Tensor:
    """A tensor of ``samples`` x ``maps`` x ``height`` x ``width`` float values.

    Element (x, y, map, sample) lives at flat index
    ``x + width * (y + height * (map + maps * sample))``.
    """

    def __init__(self, samples: int = 0, width: int = 1, height: int = 1, maps: int = 1):
        self.samples = 0
        self.width = 0
        self.height = 0
        self.maps = 0
        self.data = np.zeros(0, dtype=DATUM)
        self.is_shadow = False
        self.resize(samples, width, height, maps)

    @property
    def elements(self) -> int:
        """Total number of elements."""
        return self.samples * self.width * self.height * self.maps

    @property
    def array(self) -> np.ndarray:
        """A view of the data shaped (samples, maps, height, width)."""
        return self.data.reshape(self.samples, self.maps, self.height, self.width)

    def _release(self) -> None:
        self.data = np.zeros(0, dtype=DATUM)
        self.samples = self.width = self.height = self.maps = 0
        self.is_shadow = False

    def resize(self, samples: int, width: int = 1, height: int = 1, maps: int = 1) -> None:
        """Change the shape, reallocating zeroed storage unless a reshape suffices."""
        if self.reshape(samples, width, height, maps):
            return
        self._release()
        elements = samples * width * height * maps
        if elements == 0:
            return
        self.data = np.zeros(elements, dtype=DATUM)
        self.samples, self.width, self.height, self.maps = samples, width, height, maps

    def reshape(self, samples: int, width: int = 1, height: int = 1, maps: int = 1) -> bool:
        """Reinterpret the data with a new shape of equal size; report success."""
        if self.data.size == 0:
            return False
        if self.elements != samples * width * height * maps:
            return False
        self.samples, self.width, self.height, self.maps = samples, width, height, maps
        return True

    def shadow(self, other: "Tensor") -> None:
        """Share the storage and shape of another tensor."""
        self._release()
        self.data = other.data
        self.samples, self.width, self.height, self.maps = (
            other.samples, other.width, other.height, other.maps)
        self.is_shadow = True

    def copy(self) -> "Tensor":
        """Return an independent copy of this tensor."""
        result = Tensor(self.samples, self.width, self.height, self.maps)
        if self.elements:
            result.data[:] = self.data
        return result

    def clear(self, value: float = 0.0, sample: int | None = None) -> None:
        """Set every element, or every element of one sample, to ``value``."""
        if sample is None:
            self.data[:] = value
        else:
            per_sample = self.width * self.height * self.maps
            self.data[per_sample * sample:per_sample * (sample + 1)] = value

    def transpose(self) -> None:
        """Swap width and height of every map, in place."""
        if self.data.size == 0:
            return
        swapped = self.array.transpose(0, 1, 3, 2).copy()
        if not self.reshape(self.samples, self.height, self.width, self.maps):
            raise TensorError("Didn't reshape!")
        self.data[:] = swapped.reshape(-1)

    def offset(self, x: int = 0, y: int = 0, map: int = 0, sample: int = 0) -> int:
        """Flat index of element (x, y, map, sample)."""
        return x + self.width * (y + self.height * (map + self.maps * sample))

    def __getitem__(self, key):
        if isinstance(key, tuple):
            return float(self.data[self.offset(*key)])
        return float(self.data[key])

    def __setitem__(self, key, value) -> None:
        if isinstance(key, tuple):
            self.data[self.offset(*key)] = value
        else:
            self.data[key] = value

    def serialize(self, stream: BinaryIO, convert: bool = False) -> None:
        """Write the tensor to a binary stream.

        The plain format is four little-endian uint64 dimensions (samples,
        width, height, maps) followed by the float32 data.  With ``convert``
        the data is written as bytes instead, interleaved per pixel when the
        tensor has three maps.
        """
        if convert:
            if self.maps == 3:
                interleaved = self.array.transpose(0, 2, 3, 1)
                stream.write(_mchar_from_datum(interleaved).tobytes())
            else:
                stream.write(_mchar_from_datum(self.data).tobytes())
            return
        stream.write(_HEADER.pack(self.samples, self.width, self.height, self.maps))
        if self.elements > 0:
            stream.write(self.data.astype("<f4").tobytes())

    def deserialize(self, stream: BinaryIO, head_only: bool = False) -> "Tensor":
        """Read a tensor written by :meth:`serialize`; an exhausted stream gives an empty tensor.

        With ``head_only`` the shape is read and the data skipped.
        """
        header = stream.read(_HEADER.size)
        if not header:
            samples = width = height = maps = 0
        elif len(header) < _HEADER.size:
            raise TensorError("Truncated tensor header")
        else:
            samples, width, height, maps = _HEADER.unpack(header)
        self.resize(samples, width, height, maps)
        elements = samples * width * height * maps
        byte_count = elements * _DATUM_BYTES
        if elements > 0 and not head_only:
            payload = stream.read(byte_count)
            if len(payload) < byte_count:
                raise TensorError("Truncated tensor data")
            self.data[:] = np.frombuffer(payload, dtype="<f4")
        elif head_only:
            _skip(stream, byte_count)
        return self

    def maximum(self, sample: int = 0) -> int:
        """Index within ``sample`` of its largest element."""
        per_sample = self.width * self.height * self.maps
        if per_sample == 0:
            return 0
        chunk = self.data[per_sample * sample:per_sample * (sample + 1)]
        return int(np.argmax(chunk))

    def abs_maximum(self) -> int:
        """Flat index of the element with the largest magnitude."""
        if self.data.size == 0:
            return 0
        return int(np.argmax(np.abs(self.data)))

    def pixel_maximum(self, x: int, y: int, sample: int = 0) -> int:
        """Map index holding the largest value at pixel (x, y)."""
        if self.maps == 0:
            return 0
        return int(np.argmax(self.array[sample, :, y, x]))

    def stats(self) -> TensorStats:
        """Minimum, maximum, mean, L2 norm and variance of all elements."""
        if self.data.size == 0:
            raise TensorError("Cannot compute statistics of an empty tensor")
        values = self.data.astype(np.float64)
        average = float(values.mean())
        return TensorStats(
            minimum=float(values.min()),
            maximum=float(values.max()),
            average=average,
            l2_norm=float(np.sqrt(np.sum(values * values))),
            variance=float(np.mean((values - average) ** 2)),
        )

    @staticmethod
    def copy_sample(source: "Tensor", source_sample: int,
                    target: "Tensor", target_sample: int) -> bool:
        """Copy every map of one sample; a larger target is zero-padded."""
        if source.maps != target.maps:
            return False
        if (source.width != target.width or source.height != target.height) and (
                target.width < source.width or target.height < source.height):
            return False
        result = True
        for map_index in range(source.maps):
            result &= Tensor.copy_map(source, source_sample, map_index,
                                      target, target_sample, map_index)
        return result

    @staticmethod
    def copy_map(source: "Tensor", source_sample: int, source_map: int,
                 target: "Tensor", target_sample: int, target_map: int) -> bool:
        """Copy one map of one sample; a larger target is zero-padded."""
        if source_sample >= source.samples or target_sample >= target.samples:
            return False
        if (source.width != target.width or source.height != target.height) and (
                target.width < source.width or target.height < source.height):
            return False
        destination = target.array[target_sample, target_map]
        origin = source.array[source_sample, source_map]
        if destination.shape != origin.shape:
            destination[:] = 0
        destination[:source.height, :source.width] = origin
        return True

    def __repr__(self) -> str:
        return f"({self.samples}s@{self.width}x{self.height}x{self.maps}m)"