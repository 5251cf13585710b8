[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tinystore"
version = "0.1.0"
description = "A small embedded key-value store backed by a paged B+tree file"
requires-python = ">=3.10"
dependencies = []
keywords = ["key-value", "btree", "database", "embedded", "storage"]
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
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tinystore = "tinystore.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tinystore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
