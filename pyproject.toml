[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cobrakit"
version = "0.1.0"
description = "Token-stream query engine for interactive static analysis of C-like source code"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "static analysis",
    "code query",
    "tokens",
    "source code",
    "C",
    "pattern matching",
]
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
    "Topic :: Software Development :: Quality Assurance",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cobrakit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
