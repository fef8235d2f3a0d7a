[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "namcore"
version = "0.3.0"
description = "Neural amp model inference: load .nam model files and run Linear, ConvNet, LSTM and WaveNet models on audio."
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = ["audio", "dsp", "neural network", "amp modeling", "wavenet", "lstm", "guitar"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: End Users/Desktop",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Multimedia :: Sound/Audio :: Sound Synthesis",
    "Topic :: Multimedia :: Sound/Audio",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
namcore-benchmodel = "namcore.cli:benchmodel_main"
namcore-loadmodel = "namcore.cli:loadmodel_main"

[tool.hatch.build.targets.wheel]
packages = ["namcore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
