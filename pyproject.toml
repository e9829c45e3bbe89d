[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tripletkit"
version = "0.3.0a0"
description = "Deterministic split assignment, persisted epoch and sampler state, paged file streaming and sentence splitting for training-data sampling."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "machine-learning",
    "contrastive-learning",
    "triplet-loss",
    "dataset-sampling",
    "training-data",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
    "Topic :: Text Processing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tripletkit"]

[tool.pytest.ini_options]
addopts = "-ra"
