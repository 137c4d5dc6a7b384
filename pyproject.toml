[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sentrykit"
version = "0.1.0"
description = "Event payload types, rate-limit header parsing, W3C baggage and event processors for error-reporting clients"
requires-python = ">=3.10"
dependencies = []
keywords = ["error-reporting", "rate-limit", "baggage", "events", "monitoring"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sentrykit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
