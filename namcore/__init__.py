"""Inference for neural amp models: Linear, ConvNet, LSTM and WaveNet, with model-file loading and command-line tools."""

__version__ = "0.3.0"

__all__ = ["activations", "util", "dsp", "convnet", "lstm", "wavenet", "get_dsp", "cli"]