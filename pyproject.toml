[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xv6fs"
version = "0.1.0"
description = "A small Unix-style file system in pure Python: disk images, buffer cache, redo log, inodes, directories, pipes and a few user tools"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "filesystem",
    "file-system",
    "inode",
    "buffer-cache",
    "write-ahead-log",
    "mkfs",
    "disk-image",
    "shell-parser",
    "grep",
    "education",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
]

[project.optional-dependencies]
test = [
    "pytest",
    "hypothesis",
]

[project.scripts]
xv6-mkfs = "xv6fs.mkfs:main"
xv6-grep = "xv6fs.grep:main"
xv6fs = "xv6fs.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["xv6fs"]

[tool.hatch.build.targets.sdist]
include = [
    "xv6fs",
    "tests",
    "README.md",
    "pyproject.toml",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
