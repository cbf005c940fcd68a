"""Segmentation datasets that serve one fixed-size patch per labelled pixel."""

from __future__ import annotations

import bisect
import contextlib
import io
import itertools
from typing import BinaryIO, TextIO

from segtensor.dataset import (
    DatasetError,
    DatasetLoadSelection,
    ErrorFunction,
    Task,
    default_localized_error,
    parse_dataset_configuration,
)
from segtensor.tensor import Tensor


def _read_tensors(stream: BinaryIO) -> list:
    """Read plain tensors until the stream is exhausted or an empty one appears."""
    tensors = []
    while True:
        tensor = Tensor().deserialize(stream)
        if tensor.elements == 0:
            return tensors
        tensors.append(tensor)


class TensorStreamPatchDataset:
    """Patches cut from whole images stored as alternating image/label tensors.

    Every position where a patch fits completely inside an image is one
    sample; samples of all training images come first, then those of the
    testing images.
    """

    def __init__(self, training_stream: BinaryIO, testing_stream: BinaryIO,
                 classes: int, class_names: list, class_colors: list,
                 class_weights: list, patchsize_x: int, patchsize_y: int,
                 error_function: ErrorFunction = default_localized_error):
        if classes != len(class_names) or classes != len(class_colors):
            raise DatasetError("Class count does not match class information count!")

        self.classes = classes
        self.class_names = list(class_names)
        self.class_colors = list(class_colors)
        self.class_weights = list(class_weights)
        self.patchsize_x = patchsize_x
        self.patchsize_y = patchsize_y
        self.error_function = error_function

        training = _read_tensors(training_stream)
        if len(training) % 2:
            raise DatasetError("Odd training tensor count!")
        testing = _read_tensors(testing_stream)
        if len(testing) % 2:
            raise DatasetError("Odd testing tensor count!")

        self.tensor_count_training = len(training)
        self.tensor_count_testing = len(testing)

        self.data: list = training[0::2] + testing[0::2]
        self.labels: list = training[1::2] + testing[1::2]

        sizes = [self._inner_size(tensor) for tensor in self.data]
        self.last_sample = list(itertools.accumulate(sizes))
        training_images = len(training) // 2
        self.sample_count_training = sum(sizes[:training_images])
        self.sample_count_testing = sum(sizes[training_images:])

        self.input_maps = self.data[0].maps if self.data else 0
        self.label_maps = self.labels[0].maps if self.labels else 0

    def _inner_size(self, tensor: Tensor) -> int:
        inner_width = tensor.width - (self.patchsize_x - 1)
        inner_height = tensor.height - (self.patchsize_y - 1)
        return inner_width * inner_height

    @property
    def task(self) -> Task:
        """The task this dataset serves."""
        return Task.SEMANTIC_SEGMENTATION

    @property
    def width(self) -> int:
        """Width of one patch."""
        return self.patchsize_x

    @property
    def height(self) -> int:
        """Height of one patch."""
        return self.patchsize_y

    @property
    def training_samples(self) -> int:
        """Number of training patches."""
        return self.sample_count_training

    @property
    def testing_samples(self) -> int:
        """Number of testing patches."""
        return self.sample_count_testing

    @property
    def supports_testing(self) -> bool:
        """Whether any testing images are loaded."""
        return self.tensor_count_testing > 0

    def _fill_sample(self, data: Tensor, label: Tensor, helper: Tensor,
                     weight: Tensor, sample: int, index: int) -> bool:
        image_index = bisect.bisect_right(self.last_sample, index)
        if image_index >= len(self.last_sample):
            return False

        image = self.data[image_index]
        labels = self.labels[image_index]
        px, py = self.patchsize_x, self.patchsize_y
        inner_width = image.width - (px - 1)
        first_sample = self.last_sample[image_index] - self._inner_size(image)
        row, col = divmod(index - first_sample, inner_width)

        maps = self.input_maps
        data.array[sample, :maps, :py, :px] = image.array[0, :maps, row:row + py, col:col + px]

        centre_x = col + px // 2
        centre_y = row + py // 2
        label_maps = self.label_maps
        label.array[sample, :label_maps, 0, 0] = labels.array[0, :label_maps, centre_y, centre_x]

        helper[(0, 0, 0, sample)] = col / (image.width - 1) if image.width > 1 else 0.0
        helper[(0, 0, 1, sample)] = row / (image.height - 1) if image.height > 1 else 0.0

        class_weight = self.class_weights[label.pixel_maximum(0, 0, sample)]
        weight[(0, 0, 0, sample)] = self.error_function(
            centre_x, centre_y, image.width, image.height) * class_weight
        return True

    def get_training_sample(self, data: Tensor, label: Tensor, helper: Tensor,
                            weight: Tensor, sample: int, index: int) -> bool:
        """Copy training patch ``index`` into ``sample`` of the given tensors."""
        if not 0 <= index < self.sample_count_training:
            return False
        return self._fill_sample(data, label, helper, weight, sample, index)

    def get_testing_sample(self, data: Tensor, label: Tensor, helper: Tensor,
                           weight: Tensor, sample: int, index: int) -> bool:
        """Copy testing patch ``index`` into ``sample`` of the given tensors."""
        if not 0 <= index < self.sample_count_testing:
            return False
        return self._fill_sample(data, label, helper, weight, sample,
                                 index + self.sample_count_testing)

    @classmethod
    def from_configuration(cls, stream: TextIO, dont_load: bool = False,
                           selection: DatasetLoadSelection = DatasetLoadSelection.LOAD_BOTH,
                           patchsize_x: int = 1, patchsize_y: int = 1
                           ) -> "TensorStreamPatchDataset":
        """Build a dataset from a configuration, loading the tensor files it names."""
        config = parse_dataset_configuration(stream)

        load_training = (not dont_load and bool(config.training_file)
                         and selection in (DatasetLoadSelection.LOAD_BOTH,
                                           DatasetLoadSelection.LOAD_TRAINING_ONLY))
        load_testing = (not dont_load and bool(config.testing_file)
                        and selection in (DatasetLoadSelection.LOAD_BOTH,
                                          DatasetLoadSelection.LOAD_TESTING_ONLY))

        with contextlib.ExitStack() as stack:
            def open_or_empty(load: bool, path: str) -> BinaryIO:
                if not load:
                    return io.BytesIO()
                try:
                    return stack.enter_context(open(path, "rb"))
                except OSError as error:
                    raise DatasetError(f"Failed to load {path}!") from error

            training = open_or_empty(load_training, config.training_file)
            testing = open_or_empty(load_testing, config.testing_file)
            return cls(training, testing, config.classes, config.class_names,
                       config.class_colors, config.class_weights,
                       patchsize_x, patchsize_y, config.error_function)