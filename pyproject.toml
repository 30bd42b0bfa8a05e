[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sriovplug"
version = "0.1.0"
description = "SR-IOV network device helpers: sysfs queries, device selectors, DDP profiles and resource pools"
requires-python = ">=3.10"
keywords = ["sriov", "sr-iov", "pci", "sysfs", "network", "vfio", "ddp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sriovplug"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
