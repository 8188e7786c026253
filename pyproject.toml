[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "waxengine"
version = "0.1.0a1"
description = "Scan-facts contract, repository configuration, auto-install policy and verified language-pack installation for a design-system analysis engine"
requires-python = ">=3.11"
dependencies = []
keywords = ["design-system", "static-analysis", "lockfile", "language-pack", "scan-facts"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Quality Assurance",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["waxengine"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
