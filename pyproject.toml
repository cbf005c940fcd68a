[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "segtensor"
version = "0.1.0"
description = "Tensors, tensor stream files and datasets for semantic image segmentation"
requires-python = ">=3.10"
keywords = ["tensor", "segmentation", "dataset", "kitti", "run-length encoding", "image"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["segtensor"]

[tool.pytest.ini_options]
addopts = "-ra"
