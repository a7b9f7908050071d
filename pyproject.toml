[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minirpc"
version = "0.1.0"
description = "A small TCP RPC framework with a coroutine-driven thread pool and an asynchronous batching logger"
requires-python = ">=3.10"
dependencies = []
keywords = ["rpc", "thread-pool", "coroutine", "logging", "tcp"]
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

[project.scripts]
minirpc-demo = "minirpc.calculator:main"

[tool.hatch.build.targets.wheel]
packages = ["minirpc"]

[tool.pytest.ini_options]
addopts = "-ra"
