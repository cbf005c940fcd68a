"""Extraction of per-pixel patches and labels from segmentation images."""

from __future__ import annotations

import numpy as np

from segtensor.tensor import Tensor

_UINT_RANGE = 1 << 32


def _mirror(coords: np.ndarray, size: int) -> np.ndarray:
    """Reflect coordinates that fall off either edge back into the image."""
    coords = np.where(coords < 0, -coords, coords)
    coords = np.where(coords >= size, 2 * size - 1 - coords, coords)
    if coords.size and (coords.min() < 0 or coords.max() >= size):
        raise ValueError("Patch size too large for an image of this size")
    return coords


def extract_patches(patchsize_x: int, patchsize_y: int, source: Tensor,
                    source_sample: int = 0,
                    subtract_mean: bool = False) -> tuple[Tensor, Tensor]:
    """Cut one patch centred on every pixel of a sample.

    Returns ``(patches, helper)``: ``patches`` holds one sample per pixel,
    numbered ``width * y + x``, with edges mirrored; ``helper`` holds two
    values per patch, the clamped relative y and x position of its corner.
    """
    width, height, maps = source.width, source.height, source.maps
    npatches = width * height
    offset_x = patchsize_x // 2
    offset_y = patchsize_y // 2

    patches = Tensor(npatches, patchsize_x, patchsize_y, maps)
    helper = Tensor(npatches, 2)
    if npatches == 0:
        return patches, helper

    ys = _mirror(np.arange(height)[:, None] + np.arange(patchsize_y)[None, :] - offset_y,
                 height)
    xs = _mirror(np.arange(width)[:, None] + np.arange(patchsize_x)[None, :] - offset_x,
                 width)
    image = source.array[source_sample]
    gathered = image[:, ys[:, None, :, None], xs[None, :, None, :]]
    patches.array[:] = gathered.transpose(1, 2, 0, 3, 4).reshape(
        npatches, maps, patchsize_y, patchsize_x)

    py, px = np.divmod(np.arange(npatches), width)
    helper.data[0::2] = np.maximum(
        0.0, np.minimum(height - (patchsize_y - 1), py - offset_y)) / height
    helper.data[1::2] = np.maximum(
        0.0, np.minimum(width - (patchsize_x - 1), px - offset_x)) / width

    if subtract_mean:
        rows = patches.data.reshape(npatches, -1)
        means = rows.astype(np.float64).mean(axis=1, keepdims=True)
        rows -= means.astype(rows.dtype)

    return patches, helper


def extract_labels(patchsize_x: int, patchsize_y: int, source: Tensor,
                   source_sample: int = 0,
                   ignore_class: int = -1) -> tuple[Tensor, Tensor]:
    """Pick the label belonging to every patch of :func:`extract_patches`.

    Returns ``(labels, weights)``.  Labels are stored as the bit patterns of
    unsigned integers; a patch whose label equals ``ignore_class`` gets weight
    0, every other patch weight 1.
    """
    width, height = source.width, source.height
    npatches = width * height
    offset_x = patchsize_x // 2
    offset_y = patchsize_y // 2

    labels = Tensor(npatches, 1, 1, 1)
    weights = Tensor(npatches)
    if npatches == 0:
        return labels, weights

    iy = _mirror(np.arange(height) + (patchsize_y // 2 + 1) - offset_y, height)
    ix = _mirror(np.arange(width) + (patchsize_x // 2 + 1) - offset_x, width)
    values = source.array[source_sample, 0][iy[:, None], ix[None, :]].reshape(-1)
    labels.data[:] = values

    bits = np.ascontiguousarray(values, dtype=np.float32).view(np.uint32).astype(np.int64)
    ignore = ignore_class % _UINT_RANGE
    weights.data[:] = np.where(bits != ignore, 1.0, 0.0)
    return labels, weights