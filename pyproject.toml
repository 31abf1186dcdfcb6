[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wator"
version = "0.1.0"
description = "Wa-Tor predator-prey simulation on a toroidal grid with animated GIF output"
requires-python = ">=3.10"
keywords = ["wator", "simulation", "cellular automaton", "predator-prey", "gif"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Life",
    "Topic :: Multimedia :: Graphics",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
wator = "wator.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["wator"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
