# segtensor

segtensor holds the data side of semantic image segmentation. It covers
tensors and their binary file formats, files that hold a series of tensors,
image I/O, datasets built from a configuration file, patch extraction, and
collection of training statistics.

## Modules

- `segtensor.tensor` has `Tensor`, a float32 tensor with the shape
  samples × maps × height × width. Element `(x, y, map, sample)` can be read
  and written as `tensor[x, y, map, sample]`, and `tensor.array` gives a numpy
  view. The class provides `resize`, `reshape`, `shadow`, `copy`, `clear`,
  `transpose`, `maximum`, `abs_maximum`, `pixel_maximum` and `stats` (which
  returns a `TensorStats`). The static methods `Tensor.copy_sample` and
  `Tensor.copy_map` copy data and zero-pad a larger target. `serialize` writes
  four little-endian uint64 dimensions (samples, width, height, maps) and then
  the float32 data. `serialize(stream, convert=True)` writes bytes instead.
  `deserialize` reads the plain format back. Errors are raised as
  `TensorError`.
- `segtensor.compressed_tensor` has `compress_data` and `decompress_data`,
  which run-length encode float32 values, and `CompressedTensor`, which stores
  a shape together with its compressed bytes. `CompressedTensor` provides
  `from_tensor`, `decompress`, `serialize` and `deserialize`. Malformed data
  raises `CompressionError`.
- `segtensor.tensor_stream` has `FloatTensorStream` and
  `CompressedTensorStream`. Both read a file of tensors stored back to back.
  A compressed file begins with the magic number `CTS_MAGIC`. The function
  `open_tensor_stream(path)` picks the right class for a file. Every stream
  provides `tensor_count`, `width(i)`, `height(i)`, `maps(i)` and
  `copy_sample`.
- `segtensor.imaging` has `load_png`/`write_png`, which work on binary
  streams, and `load_jpg`/`write_jpg`, which work on paths.
  `load_tensor_file` and `write_tensor_file` choose the format from the file
  name suffix: `png`/`PNG`, `jpg`/`jpeg`/`JPG`/`JPEG`, or `Tensor`. Pixel
  bytes are mapped to the range 0.0–1.0 by `datum_from_uchar` and back by
  `uchar_from_datum`. PNG output requires one sample and three maps. Images
  with palettes or with bit depths other than 8 and 16 are rejected with
  `ImageFormatError`.
- `segtensor.kitti` has `KITTIData`, which gives image and ground-truth paths
  for each `KITTICategory`, and `localized_error`, a position-dependent error
  weight.
- `segtensor.config_parsing` parses `identifier=value` settings:
  `parse_uint`, `parse_datum`, `parse_string`, `parse_string_param`,
  `parse_kernel_size`, `parse_count` and `parse_datum_param`.
- `segtensor.segmentation` has `extract_patches`, which cuts a mirrored-edge
  patch around every pixel, and `extract_labels`, which gives each patch its
  label and a weight.
- `segtensor.dataset` has `parse_dataset_configuration`, which returns a
  `DatasetConfig`. It also has `TensorStreamDataset`, a dataset of whole
  images. Its width and height are rounded up to multiples of 64. Finally it
  has `colorize`, which paints network output in the class colours.
- `segtensor.patch_dataset` has `TensorStreamPatchDataset`. It serves one
  fixed-size patch for every position where the patch fits inside an image.
- `segtensor.stats` has `StatAggregator`, `StatDescriptor`, `Stat`,
  `HardcodedStats` and the `StatSink` interface. It also has `CSVStatSink`,
  which writes one `<experiment>.csv` file per experiment into an existing
  directory (`csv` by default).

## Installation

```
pip install .
```

## Example

```python
import io
from segtensor.tensor import Tensor
from segtensor.compressed_tensor import CompressedTensor

t = Tensor(1, 4, 4, 3)
t.clear(0.5)

buf = io.BytesIO()
t.serialize(buf)
buf.seek(0)

u = Tensor().deserialize(buf)
print(u)  # (1s@4x4x3m)

restored = CompressedTensor.from_tensor(u).decompress()
```

## Dataset configuration

```
classes=2
background
road
colors
000000
FF00FF
weights
1.0
2.0
localized_error=kitti
training=train.Tensor
testing=test.Tensor
```

The lines after `classes=<n>` are the class names. The lines after `colors`
are hexadecimal RGB values. The lines after `weights` are per-class weights;
if none are given, every weight is 1.0. Training and testing files hold
image and label tensors that alternate.

```python
from segtensor.dataset import TensorStreamDataset

with open("dataset.conf") as conf:
    dataset = TensorStreamDataset.from_configuration(conf)
print(dataset.training_samples, dataset.testing_samples)
```

`TensorStreamPatchDataset.from_configuration(conf, patchsize_x=..., patchsize_y=...)`
reads the same format.

## Statistics

```python
from segtensor.stats import CSVStatSink, StatAggregator, StatDescriptor

aggregator = StatAggregator()
aggregator.register_sink(CSVStatSink("csv"))
loss = aggregator.register_stat(StatDescriptor("Loss"))
aggregator.initialize()          # opens csv/experiment.csv
aggregator.start_recording()
aggregator.update(loss, 0.25)
aggregator.snapshot()            # writes one CSV row, starts a new period
```

## What it does not do

segtensor is a library with no command-line tool. It does not define or
train networks, does not check gradients, does not use GPUs, and does not
open windows to display tensors.

## Tests

```
pip install .[test]
pytest
```