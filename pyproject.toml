[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ringchan"
version = "0.1.0"
description = "In-process ring-buffer channels, named synchronisation primitives and pool allocators"
requires-python = ">=3.10"
dependencies = []
keywords = ["ring-buffer", "queue", "broadcast", "unicast", "allocator", "mutex", "semaphore", "threading"]
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
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ringchan"]

[tool.pytest.ini_options]
addopts = "-ra"
