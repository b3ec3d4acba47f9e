[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rvtrace"
version = "0.1.0"
description = "RISC-V 32-bit emulator that produces hashed execution traces"
requires-python = ">=3.10"
dependencies = []
keywords = ["riscv", "rv32im", "emulator", "trace", "elf"]
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
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
rvtrace = "rvtrace.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["rvtrace"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
