[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nnueval"
version = "0.1.0"
description = "Quantized NNUE chess evaluation building blocks: LEB128 parameter I/O, HalfKAv2_hm features, incremental accumulators and forward propagation"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = ["chess", "nnue", "neural network", "evaluation", "quantization", "leb128"]
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
    "Operating System :: OS Independent",
    "Topic :: Games/Entertainment :: Board Games",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nnueval"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
