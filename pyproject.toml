[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "re1unpack"
version = "0.1.0"
description = "Extract images, text, room data and tables from classic survival-horror game files"
requires-python = ">=3.10"
dependencies = [
    "pillow",
]
keywords = ["tim", "pak", "lzw", "rdt", "psx", "mdec", "unpacker", "game-assets"]
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
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
    "Topic :: Games/Entertainment",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
re1unpack = "re1unpack.extract:main"

[tool.hatch.build.targets.wheel]
packages = ["re1unpack"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
