"""Loading and writing tensors as PNG, JPEG and serialized tensor files."""

from __future__ import annotations

import io
import struct
from os import PathLike, fspath
from typing import BinaryIO, Union

import numpy as np
from PIL import Image

from segtensor.tensor import Tensor, TensorError

PathType = Union[str, "PathLike[str]"]

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_PNG_COLOR_MASK_PALETTE = 1
_IHDR = struct.Struct(">4sIIBB")

_PNG_SUFFIXES = ("png", "PNG")
_JPG_SUFFIXES = ("jpg", "jpeg", "JPG", "JPEG")
_TENSOR_SUFFIX = "Tensor"


class ImageFormatError(TensorError):
    """Raised when an image cannot be decoded or encoded."""


def datum_from_uchar(value):
    """Map byte values 0..255 onto 0.0..1.0."""
    array = np.asarray(value)
    result = array.astype(np.float32) / np.float32(255.0)
    return result if array.ndim else float(result)


def uchar_from_datum(value):
    """Map values in 0.0..1.0 onto bytes, clamping values outside the range."""
    array = np.asarray(value, dtype=np.float64)
    result = np.rint(np.clip(array, 0.0, 1.0) * 255.0).astype(np.uint8)
    return result if array.ndim else int(result)


def check_png_signature(stream: BinaryIO) -> bool:
    """Report whether ``stream`` starts with a PNG signature; rewind it afterwards."""
    signature = stream.read(len(PNG_SIGNATURE))
    if len(signature) < len(PNG_SIGNATURE):
        return False
    stream.seek(0)
    return signature == PNG_SIGNATURE


def _image_to_tensor(image: Image.Image, scale: float) -> Tensor:
    pixels = np.asarray(image)
    if pixels.ndim == 2:
        pixels = pixels[:, :, np.newaxis]
    height, width, channels = pixels.shape
    tensor = Tensor(1, width, height, channels)
    tensor.array[0] = pixels.transpose(2, 0, 1).astype(np.float64) / scale
    return tensor


def load_png(stream: BinaryIO) -> Tensor:
    """Decode an 8- or 16-bit PNG without a palette into a one-sample tensor."""
    if not check_png_signature(stream):
        raise ImageFormatError("PNG signature invalid!")
    data = stream.read()
    header_end = len(PNG_SIGNATURE) + 4 + _IHDR.size
    if len(data) < header_end:
        raise ImageFormatError("PNG header truncated")
    chunk_type, _width, _height, depth, colors = _IHDR.unpack(
        data[len(PNG_SIGNATURE) + 4:header_end])
    if chunk_type != b"IHDR":
        raise ImageFormatError("PNG header missing")
    if depth not in (8, 16):
        raise ImageFormatError(
            f"Only 8/16 bits per channel are supported! This image has {depth}")
    if colors & _PNG_COLOR_MASK_PALETTE:
        raise ImageFormatError(f"Unsupported color type: {colors}")
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            pixels_are_wide = np.asarray(image).dtype.itemsize > 1
            return _image_to_tensor(image, 65535.0 if pixels_are_wide else 255.0)
    except OSError as error:
        raise ImageFormatError(f"Cannot decode PNG: {error}") from error


def _rgb_pixels(tensor: Tensor) -> np.ndarray:
    return uchar_from_datum(tensor.array[0, :3].transpose(1, 2, 0))


def write_png(stream: BinaryIO, tensor: Tensor) -> None:
    """Encode a one-sample, three-map tensor as an 8-bit RGB PNG."""
    if tensor.samples != 1:
        raise ImageFormatError("Cannot write PNGs with more than 1 sample!")
    if tensor.maps != 3:
        raise ImageFormatError("Cannot write PNGs with channels != 3")
    Image.fromarray(_rgb_pixels(tensor)).save(stream, format="PNG")


def load_jpg(path: PathType) -> Tensor:
    """Decode a JPEG file into a one-sample tensor with one map per component."""
    try:
        with Image.open(fspath(path)) as image:
            image.load()
            return _image_to_tensor(image, 255.0)
    except FileNotFoundError:
        raise
    except OSError as error:
        raise ImageFormatError(f"Cannot open {fspath(path)}") from error


def write_jpg(path: PathType, tensor: Tensor) -> None:
    """Encode the first three maps of sample 0 as an RGB JPEG at quality 100."""
    if tensor.samples < 1 or tensor.maps < 3:
        raise ImageFormatError("Cannot write JPGs with fewer than 3 channels")
    Image.fromarray(_rgb_pixels(tensor)).save(fspath(path), format="JPEG", quality=100)


def load_tensor_file(filename: PathType) -> Tensor:
    """Load a tensor from a PNG, JPEG or serialized tensor file, chosen by suffix."""
    name = fspath(filename)
    if name.endswith(_PNG_SUFFIXES):
        with open(name, "rb") as stream:
            return load_png(stream)
    if name.endswith(_JPG_SUFFIXES):
        return load_jpg(name)
    if name.endswith(_TENSOR_SUFFIX):
        with open(name, "rb") as stream:
            return Tensor().deserialize(stream)
    raise ImageFormatError("File format not supported!")


def write_tensor_file(filename: PathType, tensor: Tensor) -> None:
    """Write a tensor as a PNG, JPEG or serialized tensor file, chosen by suffix."""
    name = fspath(filename)
    if name.endswith(_PNG_SUFFIXES):
        with open(name, "wb") as stream:
            write_png(stream, tensor)
        return
    if name.endswith(_JPG_SUFFIXES):
        write_jpg(name, tensor)
        return
    if name.endswith(_TENSOR_SUFFIX):
        with open(name, "wb") as stream:
            tensor.serialize(stream)
        return
    raise ImageFormatError("File format not supported!")