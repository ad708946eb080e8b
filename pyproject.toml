[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "waypoint"
version = "0.1.0"
description = "Index forum sub-forums and topics, keep an on-disk archive layout, and track indexing progress and performance."
requires-python = ">=3.10"
dependencies = [
    "beautifulsoup4",
]
keywords = ["forum", "indexer", "crawler", "archive", "scraping", "metrics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Indexing/Search",
    "Topic :: System :: Archiving",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
waypoint-indexer = "waypoint.indexer:main"
waypoint-subforums = "waypoint.subforums:main"
waypoint-master = "waypoint.master:main"

[tool.hatch.build.targets.wheel]
packages = ["waypoint"]

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
