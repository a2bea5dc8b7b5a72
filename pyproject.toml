[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ipstack"
version = "0.1.0"
description = "Network-layer model for discrete-event simulation: routing tables, NAT, multicast, PIM groups and metrics"
requires-python = ">=3.10"
dependencies = []
keywords = ["ip", "routing", "simulation", "network", "multicast", "pim", "nat"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ipstack"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
