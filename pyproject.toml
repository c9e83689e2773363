[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "udfkit"
version = "0.1.0"
description = "Building blocks for user-defined map, map-stream, reduce and reduce-stream functions in a streaming pipeline"
requires-python = ">=3.10"
dependencies = []
keywords = ["stream-processing", "udf", "map", "reduce", "pipeline", "windowing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["udfkit"]

[tool.pytest.ini_options]
addopts = "-ra"
