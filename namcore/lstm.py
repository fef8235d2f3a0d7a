"""Multi-layer LSTM model processing audio one sample at a time."""

from __future__ import annotations

import numpy as np

from .activations import fast_sigmoid, fast_tanh, is_fast_tanh_enabled, sigmoid
from .dsp import DSP, UNKNOWN_EXPECTED_SAMPLE_RATE, _take_floats

__all__ = ["LSTMCell", "LSTM"]

_F = np.float32
_SAMPLE = np.float64
_END = object()


class LSTMCell:
    """A single LSTM cell with input, forget, cell and output gates."""

    def __init__(self, input_size, hidden_size, weights):
        self._input_size = int(input_size)
        self._hidden_size = int(hidden_size)
        rows = 4 * self._hidden_size
        cols = self._input_size + self._hidden_size
        # Row-major, matching how the trainer flattens the matrix.
        self._w = _take_floats(weights, rows * cols).reshape(rows, cols)
        self._b = _take_floats(weights, rows)
        self._xh = np.zeros(cols, dtype=_F)
        self._xh[self._input_size:] = _take_floats(weights, self._hidden_size)
        self._c = _take_floats(weights, self._hidden_size)

    @property
    def hidden_state(self):
        """Copy of the current hidden state."""
        return self._xh[self._input_size:].copy()

    @property
    def cell_state(self):
        """Copy of the current cell state."""
        return self._c.copy()

    def process(self, x):
        """Advance the cell by one step with input vector ``x``."""
        x = np.asarray(x, dtype=_F).reshape(-1)
        if x.shape[0] != self._input_size:
            raise ValueError(f"Expected input of size {self._input_size}, got {x.shape[0]}")
        hidden = self._hidden_size
        self._xh[:self._input_size] = x
        ifgo = (self._w @ self._xh + self._b).astype(_F)
        gate_i = ifgo[:hidden]
        gate_f = ifgo[hidden:2 * hidden]
        gate_g = ifgo[2 * hidden:3 * hidden]
        gate_o = ifgo[3 * hidden:]
        if is_fast_tanh_enabled():
            sig, tanh = fast_sigmoid, fast_tanh
        else:
            sig, tanh = sigmoid, np.tanh
        self._c = np.asarray(sig(gate_f) * self._c + sig(gate_i) * tanh(gate_g), dtype=_F)
        self._xh[self._input_size:] = sig(gate_o) * tanh(self._c)


class LSTM(DSP):
    """Stacked LSTM cells followed by a linear head."""

    def __init__(
        self,
        num_layers,
        input_size,
        hidden_size,
        weights,
        expected_sample_rate=UNKNOWN_EXPECTED_SAMPLE_RATE,
    ):
        super().__init__(expected_sample_rate)
        it = iter(list(weights))
        self._layers = [
            LSTMCell(input_size if index == 0 else hidden_size, hidden_size, it)
            for index in range(num_layers)
        ]
        self._head_weight = _take_floats(it, hidden_size)
        self._head_bias = _take_floats(it, 1)[0]
        if next(it, _END) is not _END:
            raise ValueError("Didn't touch all the weights when initializing LSTM")

    def process(self, input):
        samples = np.asarray(input, dtype=_SAMPLE)
        return np.fromiter(
            (self._process_sample(x) for x in samples), dtype=_SAMPLE, count=samples.shape[0]
        )

    def prewarm_samples(self):
        # Half a second settles most models; always do at least one sample.
        result = int(0.5 * self.expected_sample_rate)
        return result if result > 0 else 1

    def _process_sample(self, x):
        if not self._layers:
            return x
        state = np.array([x], dtype=_F)
        for layer in self._layers:
            layer.process(state)
            state = layer.hidden_state
        return float(self._head_weight @ state + self._head_bias)