[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ros2probe"
version = "0.1.0"
description = "RTPS packet parsing, ROS graph filtering and Graphviz layout, and /proc resource sampling for ROS 2 monitoring"
requires-python = ">=3.10"
dependencies = []
keywords = ["ros2", "rtps", "dds", "graphviz", "monitoring", "procfs"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ros2probe"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
