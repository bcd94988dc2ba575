[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "trantor"
version = "1.5.25"
description = "Non-blocking reactor-style TCP building blocks: event loops, loop threads, channels, sockets, acceptors, connectors, send buffers and a DNS resolver"
requires-python = ">=3.10"
dependencies = []
keywords = ["networking", "reactor", "event-loop", "tcp", "non-blocking", "dns"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["trantor"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
