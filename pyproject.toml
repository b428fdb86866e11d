[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cfylrpc"
version = "0.1.0"
description = "LRPC2 local message protocol over Unix domain sockets: client, connection listener, codec and version utilities"
requires-python = ">=3.10"
dependencies = []
keywords = ["lrpc", "rpc", "unix-socket", "ipc", "protocol"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
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
packages = ["cfylrpc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
