[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "themenu"
version = "0.1.0"
description = "Daily menu ordering service with separate read and write APIs, a Redis event bus and a live kitchen dashboard"
requires-python = ">=3.10"
keywords = ["menu", "orders", "cqrs", "event-bus", "redis", "server-sent-events", "flask"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
]
dependencies = [
    "redis",
    "flask",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
themenu-web = "themenu.web:main"

[tool.hatch.build.targets.wheel]
packages = ["themenu"]

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
