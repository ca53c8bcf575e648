[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vara"
version = "0.1.0"
description = "Client for the VARA HF/FM modem's TCP command and data ports"
requires-python = ">=3.10"
dependencies = []
keywords = ["vara", "modem", "ham radio", "winlink", "tnc", "amateur radio"]
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
    "Topic :: Communications :: Ham Radio",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vara"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
