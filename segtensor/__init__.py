"""Tensors, tensor stream files, image I/O, datasets and statistics for semantic image segmentation."""

__version__ = "0.1.0"