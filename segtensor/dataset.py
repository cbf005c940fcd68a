"""Segmentation datasets built from tensor stream files and a configuration."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Callable, Optional, TextIO

import numpy as np

from segtensor import kitti
from segtensor.config_parsing import parse_count, parse_string, starts_with_identifier
from segtensor.imaging import datum_from_uchar
from segtensor.tensor import Tensor
from segtensor.tensor_stream import FloatTensorStream, TensorStream, open_tensor_stream

ErrorFunction = Callable[[int, int, int, int], float]

_HEX = re.compile(r"\s*([+-]?)(?:0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]*)")
_FLOAT = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_COLOR_LIMIT = 1 << 32
_SIZE_ALIGNMENT = 64


class DatasetError(Exception):
    """Raised when a dataset or its configuration is inconsistent."""


class Task(enum.Enum):
    """What a dataset is meant to train."""

    SEMANTIC_SEGMENTATION = "semantic_segmentation"


class DatasetLoadSelection(enum.Enum):
    """Which parts of a dataset to load."""

    LOAD_BOTH = "both"
    LOAD_TRAINING_ONLY = "training"
    LOAD_TESTING_ONLY = "testing"


def default_localized_error(x: int, y: int, w: int, h: int) -> float:
    """Uniform error weight for any pixel position and image size.

    Raises ``ValueError`` for negative coordinates or sizes.
    """
    if min(x, y, w, h) < 0:
        raise ValueError("pixel coordinates and image sizes must be non-negative")
    return 1.0


@dataclass
class DatasetConfig:
    """Settings read from a dataset configuration file."""

    classes: int = 0
    class_names: list = field(default_factory=list)
    class_colors: list = field(default_factory=list)
    class_weights: list = field(default_factory=list)
    error_function: ErrorFunction = default_localized_error
    training_file: str = ""
    testing_file: str = ""
    no_mmap: bool = False


def _parse_color(text: str) -> int:
    match = _HEX.match(text)
    digits = match.group(2) if match else ""
    value = int(digits, 16) if digits else 0
    if match and match.group(1) == "-" and value:
        raise DatasetError("Not a valid color!")
    if value >= _COLOR_LIMIT:
        raise DatasetError("Not a valid color!")
    return value


def _parse_weight(text: str) -> float:
    match = _FLOAT.match(text)
    return float(match.group(1)) if match else 0.0


def parse_dataset_configuration(stream: TextIO) -> DatasetConfig:
    """Read class names, colours, weights, error function and tensor files."""
    seekable = getattr(stream, "seekable", None)
    if seekable is not None and seekable():
        stream.seek(0)
    lines = iter(stream.read().split("\n"))
    config = DatasetConfig()

    for line in lines:
        if starts_with_identifier(line, "nommap"):
            config.no_mmap = True

        if starts_with_identifier(line, "classes"):
            count = parse_count(line, "classes")
            if count is not None:
                config.classes = count
            config.class_names.extend(next(lines, "") for _ in range(config.classes))

        if starts_with_identifier(line, "colors"):
            config.class_colors.extend(
                _parse_color(next(lines, "")) for _ in range(config.classes))

        if starts_with_identifier(line, "weights"):
            config.class_weights.extend(
                _parse_weight(next(lines, "")) for _ in range(config.classes))

        if starts_with_identifier(line, "localized_error"):
            name = parse_string(line, "localized_error")
            if name == "kitti":
                config.error_function = kitti.localized_error
            elif name != "default":
                config.error_function = default_localized_error

        if starts_with_identifier(line, "training"):
            config.training_file = parse_string(line, "training")
        if starts_with_identifier(line, "testing"):
            config.testing_file = parse_string(line, "testing")

    if len(config.class_weights) != config.classes:
        config.class_weights.extend([1.0] * config.classes)
    return config


def _color_components(color: int) -> np.ndarray:
    return datum_from_uchar(np.array(
        [(color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF], dtype=np.uint8))


def colorize(dataset, net_output: Tensor, target: Tensor) -> None:
    """Paint network output into the first three maps of ``target`` using class colours.

    With one class the colour is scaled by the output mapped from [-1, 1] to
    [0, 1]; otherwise each pixel takes the colour of its highest-scoring class.
    """
    height, width = net_output.height, net_output.width
    output = net_output.array
    destination = target.array[:, :3, :height, :width]
    colors = list(dataset.class_colors)

    if dataset.classes == 1:
        rgb = _color_components(colors[0])
        value = (output[:, 0] + 1.0) / 2.0
        destination[:] = rgb[None, :, None, None] * value[:, None]
        return

    scores = output[:, :dataset.classes]
    best = scores.argmax(axis=1)
    best = np.where(scores.max(axis=1) > np.finfo(np.float32).tiny, best, 0)
    palette = np.stack([_color_components(color) for color in colors])
    destination[:] = palette[best].transpose(0, 3, 1, 2)


class TensorStreamDataset:
    """Whole images with labels, stored as alternating image/label tensors."""

    def __init__(self, training_stream: TensorStream, testing_stream: TensorStream,
                 classes: int, class_names: list, class_colors: list,
                 class_weights: list,
                 error_function: ErrorFunction = default_localized_error):
        if classes != len(class_names) or classes != len(class_colors):
            raise DatasetError("Class count does not match class information count!")

        self.training_stream = training_stream
        self.testing_stream = testing_stream
        self.classes = classes
        self.class_names = list(class_names)
        self.class_colors = list(class_colors)
        self.class_weights = list(class_weights)
        self.error_function = error_function

        self.tensor_count_training = training_stream.tensor_count
        if self.tensor_count_training % 2:
            raise DatasetError("Odd training tensor count!")
        self.tensor_count_testing = testing_stream.tensor_count
        if self.tensor_count_testing % 2:
            raise DatasetError("Odd testing tensor count!")

        widths = [0]
        heights = [0]
        for stream in (training_stream, testing_stream):
            for pair in range(stream.tensor_count // 2):
                widths.append(stream.width(2 * pair))
                heights.append(stream.height(2 * pair))

        # Both dimensions are rounded up to a multiple of 64.
        self.width = -(-max(widths) // _SIZE_ALIGNMENT) * _SIZE_ALIGNMENT
        self.height = -(-max(heights) // _SIZE_ALIGNMENT) * _SIZE_ALIGNMENT

        if training_stream.tensor_count > 0:
            reference: Optional[TensorStream] = training_stream
        elif testing_stream.tensor_count > 0:
            reference = testing_stream
        else:
            reference = None
        self.input_maps = reference.maps(0) if reference else 0
        self.label_maps = reference.maps(1) if reference else 0

        self.error_cache = Tensor(1, self.width, self.height, 1)
        if self.error_cache.elements:
            self.error_cache.array[0, 0] = self._error_map(self.width, self.height)

    @property
    def task(self) -> Task:
        """The task this dataset serves."""
        return Task.SEMANTIC_SEGMENTATION

    @property
    def training_samples(self) -> int:
        """Number of training images."""
        return self.tensor_count_training // 2

    @property
    def testing_samples(self) -> int:
        """Number of testing images."""
        return self.tensor_count_testing // 2

    @property
    def supports_testing(self) -> bool:
        """Whether any testing images are loaded."""
        return self.tensor_count_testing > 0

    def _error_map(self, width: int, height: int) -> np.ndarray:
        errors = [[self.error_function(x, y, width, height) for x in range(width)]
                  for y in range(height)]
        return np.array(errors, dtype=np.float64).reshape(height, width)

    def _fill_sample(self, stream: TensorStream, data: Tensor, label: Tensor,
                     helper: Tensor, weight: Tensor, sample: int, index: int) -> bool:
        data_ok = stream.copy_sample(2 * index, 0, data, sample)
        label_ok = stream.copy_sample(2 * index + 1, 0, label, sample)

        data_width = stream.width(2 * index)
        data_height = stream.height(2 * index)

        planes = helper.array[sample, :2]
        planes[:, :self.height, :self.width] = 0.0
        with np.errstate(divide="ignore", invalid="ignore"):
            planes[0, :data_height, :data_width] = (
                np.arange(data_width, dtype=np.float32) / np.float32(data_width - 1))
            planes[1, :data_height, :data_width] = (
                np.arange(data_height, dtype=np.float32) / np.float32(data_height - 1))[:, None]

        weight.clear(0.0, sample)
        if data_width and data_height:
            best = label.array[sample, :, :data_height, :data_width].argmax(axis=0)
            class_weights = np.asarray(self.class_weights, dtype=np.float64)[best]
            weight.array[sample, 0, :data_height, :data_width] = (
                self._error_map(data_width, data_height) * class_weights)

        return data_ok and label_ok

    def get_training_sample(self, data: Tensor, label: Tensor, helper: Tensor,
                            weight: Tensor, sample: int, index: int) -> bool:
        """Copy training image ``index`` into ``sample`` of the given tensors."""
        if not 0 <= index < self.training_samples:
            return False
        return self._fill_sample(self.training_stream, data, label, helper, weight,
                                 sample, index)

    def get_testing_sample(self, data: Tensor, label: Tensor, helper: Tensor,
                           weight: Tensor, sample: int, index: int) -> bool:
        """Copy testing image ``index`` into ``sample`` of the given tensors."""
        if not 0 <= index < self.testing_samples:
            return False
        return self._fill_sample(self.testing_stream, data, label, helper, weight,
                                 sample, index)

    @classmethod
    def from_configuration(cls, stream: TextIO, dont_load: bool = False,
                           selection: DatasetLoadSelection = DatasetLoadSelection.LOAD_BOTH
                           ) -> "TensorStreamDataset":
        """Build a dataset from a configuration, loading the tensor files it names."""
        config = parse_dataset_configuration(stream)

        training: TensorStream = FloatTensorStream()
        testing: TensorStream = FloatTensorStream()
        if (not dont_load and config.training_file
                and selection in (DatasetLoadSelection.LOAD_BOTH,
                                  DatasetLoadSelection.LOAD_TRAINING_ONLY)):
            training = open_tensor_stream(config.training_file)
        if (not dont_load and config.testing_file
                and selection in (DatasetLoadSelection.LOAD_BOTH,
                                  DatasetLoadSelection.LOAD_TESTING_ONLY)):
            testing = open_tensor_stream(config.testing_file)

        return cls(training, testing, config.classes, config.class_names,
                   config.class_colors, config.class_weights, config.error_function)