[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "heartjoin"
version = "0.2.1"
description = "Low-overhead fork-join parallelism driven by heartbeat-based work sharing"
requires-python = ">=3.10"
keywords = ["join", "concurrency", "parallel", "fork-join", "heartbeat"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Typing :: Typed",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["heartjoin"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
