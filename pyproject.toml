[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "migrakit"
version = "0.1.0"
description = "Building blocks for versioned SQL schema migrations: annotated SQL parsing, dialect queries, version resolution and session locking"
requires-python = ">=3.10"
dependencies = []
keywords = ["migrations", "database", "sql", "schema", "versioning"]
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
    "Topic :: Database",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["migrakit"]

[tool.pytest.ini_options]
addopts = "-ra"
