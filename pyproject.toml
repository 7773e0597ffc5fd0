[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "calemdar"
version = "0.1.0"
description = "Recurring-event expansion, Full Calendar rule translation and config tooling for Obsidian calendar vaults"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["calendar", "recurring", "obsidian", "markdown", "rrule", "scheduling"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Scheduling",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
calemdar = "calemdar.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["calemdar"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
