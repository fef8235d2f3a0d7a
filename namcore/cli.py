"""Command-line tools: load a model, or benchmark how fast it runs."""

from __future__ import annotations

import json
import sys
import time

import numpy as np

from .activations import enable_fast_tanh
from .get_dsp import get_dsp

__all__ = ["benchmodel_main", "loadmodel_main"]

AUDIO_BUFFER_SIZE = 64
_BENCHMARK_SAMPLES_PER_SECOND = 48000
_BENCHMARK_SECONDS = 2

_LOAD_ERRORS = (OSError, ValueError, KeyError, TypeError, RuntimeError, NotImplementedError, json.JSONDecodeError)


def _args(argv):
    return list(sys.argv[1:] if argv is None else argv)


def loadmodel_main(argv=None):
    """Load the model named on the command line and report whether it worked."""
    args = _args(argv)
    if not args:
        print("Usage: loadmodel <model_path>", file=sys.stderr)
        return 0
    model_path = args[0]
    print(f"Loading model [{model_path}]", file=sys.stderr)
    try:
        get_dsp(model_path)
    except _LOAD_ERRORS as error:
        print(f"Failed to load model: {error}", file=sys.stderr)
        return 1
    print("Model loaded successfully", file=sys.stderr)
    return 0


def benchmodel_main(argv=None):
    """Time two seconds' worth of silent buffers through the named model."""
    args = _args(argv)
    if not args:
        print("Usage: benchmodel <model_path>", file=sys.stderr)
        return 0
    model_path = args[0]
    print(f"Loading model {model_path}")

    enable_fast_tanh()
    try:
        model = get_dsp(model_path)
    except _LOAD_ERRORS as error:
        print(f"Failed to load model: {error}", file=sys.stderr)
        return 1

    buffer_size = AUDIO_BUFFER_SIZE
    model.reset(model.expected_sample_rate, buffer_size)
    num_buffers = (_BENCHMARK_SAMPLES_PER_SECOND // buffer_size) * _BENCHMARK_SECONDS
    silence = np.zeros(buffer_size, dtype=np.float64)

    print("Running benchmark")
    start = time.perf_counter()
    for _ in range(num_buffers):
        model.process(silence)
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    print("Finished")

    print(f"{int(elapsed_ms)}ms")
    print(f"{elapsed_ms}ms")
    return 0


if __name__ == "__main__":
    sys.exit(loadmodel_main())