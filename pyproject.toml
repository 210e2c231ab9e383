[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "complogs"
version = "0.1.0"
description = "Logging configuration, runtime verbosity control, text and JSON log formats, and a log-capturing command runner"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "logging",
    "verbosity",
    "vmodule",
    "json-logging",
    "structured-logging",
    "log-reduction",
    "feature-gates",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
complogs-runner = "complogs.runner:main"
complogs-example = "complogs.example:main"

[tool.hatch.build.targets.wheel]
packages = ["complogs"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
