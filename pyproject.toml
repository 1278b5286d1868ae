[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "manifestguard"
version = "0.1.0"
description = "Validating admission webhook that matches Kubernetes requests against ManifestIntegrityProfile resources"
requires-python = ">=3.10"
keywords = [
    "kubernetes",
    "admission-controller",
    "webhook",
    "manifest",
    "integrity",
    "policy",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml>=6.0",
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
manifestguard-webhook = "manifestguard.server:main"

[tool.hatch.build.targets.wheel]
packages = ["manifestguard"]

[tool.hatch.build.targets.sdist]
include = ["manifestguard", "tests"]

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
ignore_missing_imports = true
