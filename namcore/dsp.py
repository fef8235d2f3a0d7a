"""Core DSP base classes, the linear (impulse-response) model and basic NN modules.

Audio samples passed to and returned from ``process`` are double precision;
internal state and weights are kept in single precision.
"""

from __future__ import annotations

import enum
import itertools

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

__all__ = [
    "UNKNOWN_EXPECTED_SAMPLE_RATE",
    "Architecture",
    "DSP",
    "Buffer",
    "Linear",
    "Conv1D",
    "Conv1x1",
]

# Use a sample rate of -1 when it is not known what the model expects.
UNKNOWN_EXPECTED_SAMPLE_RATE = -1.0

_INPUT_BUFFER_SAFETY_FACTOR = 32
_DEFAULT_PREWARM_BUFFER_SIZE = 4096

_F = np.float32
_SAMPLE = np.float64


def _take_floats(weights, count):
    """Consume ``count`` values from the iterator ``weights`` as float32."""
    if iter(weights) is not weights:
        raise TypeError("weights must be an iterator that is consumed as it is read")
    try:
        return np.fromiter(itertools.islice(weights, count), dtype=_F, count=count)
    except ValueError:
        raise ValueError(f"Not enough weights: needed {count} more") from None


class Architecture(enum.IntEnum):
    """High-level model architectures."""

    LINEAR = 0
    CONVNET = 1
    LSTM = 2
    CAT_LSTM = 3
    WAVENET = 4
    CAT_WAVENET = 5


class DSP:
    """Base processing unit. By default it passes audio through unchanged."""

    def __init__(self, expected_sample_rate=UNKNOWN_EXPECTED_SAMPLE_RATE):
        self._expected_sample_rate = float(expected_sample_rate)
        self._loudness: float | None = None
        self._input_level: float | None = None
        self._output_level: float | None = None
        self._external_sample_rate: float | None = None
        self._max_buffer_size = 0

    def prewarm(self):
        """Run silence through the model to settle its initial conditions."""
        if self._max_buffer_size == 0:
            self.set_max_buffer_size(_DEFAULT_PREWARM_BUFFER_SIZE)
        samples = self.prewarm_samples()
        if samples == 0:
            return
        size = max(self._max_buffer_size, 1)
        silence = np.zeros(size, dtype=_SAMPLE)
        processed = 0
        while processed < samples:
            self.process(silence)
            processed += size

    def process(self, input):
        """Return the processed copy of ``input``."""
        return np.array(input, dtype=_SAMPLE)

    @property
    def expected_sample_rate(self):
        """Sample rate the model expects, in Hz (-1 if unknown)."""
        return self._expected_sample_rate

    @property
    def input_level(self):
        """Input level in dBu for 0 dBFS; 0.0 when unknown."""
        return 0.0 if self._input_level is None else self._input_level

    @input_level.setter
    def input_level(self, value):
        self._input_level = float(_F(value))

    @property
    def output_level(self):
        """Output level in dBu for 0 dBFS; 0.0 when unknown."""
        return 0.0 if self._output_level is None else self._output_level

    @output_level.setter
    def output_level(self, value):
        self._output_level = float(_F(value))

    @property
    def loudness(self):
        """Loudness of the model in dB. Raises RuntimeError if unknown."""
        if self._loudness is None:
            raise RuntimeError("Asked for loudness of a model that doesn't know how loud it is!")
        return self._loudness

    @loudness.setter
    def loudness(self, value):
        self._loudness = float(value)

    @property
    def has_input_level(self):
        return self._input_level is not None

    @property
    def has_output_level(self):
        return self._output_level is not None

    @property
    def has_loudness(self):
        return self._loudness is not None

    @property
    def max_buffer_size(self):
        """Largest number of frames expected per ``process`` call."""
        return self._max_buffer_size

    @property
    def external_sample_rate(self):
        """Sample rate given by the host at reset, or None."""
        return self._external_sample_rate

    def reset(self, sample_rate, max_buffer_size):
        """Record the host sample rate and buffer size, then prewarm."""
        self._external_sample_rate = float(sample_rate)
        self.set_max_buffer_size(max_buffer_size)
        self.prewarm()

    def reset_and_prewarm(self, sample_rate, max_buffer_size):
        """Reset, then prewarm."""
        self.reset(sample_rate, max_buffer_size)
        self.prewarm()

    def set_max_buffer_size(self, max_buffer_size):
        self._max_buffer_size = int(max_buffer_size)

    def prewarm_samples(self):
        """How many samples must be processed to be considered warmed up."""
        return 0


class Buffer(DSP):
    """DSP keeping an input history longer than a single processing block."""

    def __init__(self, receptive_field, expected_sample_rate=UNKNOWN_EXPECTED_SAMPLE_RATE):
        super().__init__(expected_sample_rate)
        self._receptive_field = 0
        self._input_buffer_offset = 0
        self._input_buffer = np.zeros(0, dtype=_F)
        self._output_buffer = np.zeros(0, dtype=_F)
        self._set_receptive_field(receptive_field)

    @property
    def receptive_field(self):
        return self._receptive_field

    def _set_receptive_field(self, receptive_field, input_buffer_size=None):
        if input_buffer_size is None:
            input_buffer_size = _INPUT_BUFFER_SAFETY_FACTOR * receptive_field
        self._receptive_field = int(receptive_field)
        self._input_buffer = np.zeros(int(input_buffer_size), dtype=_F)
        self._reset_input_buffer()

    def _reset_input_buffer(self):
        self._input_buffer_offset = self._receptive_field

    def _advance_input_buffer(self, num_frames):
        self._input_buffer_offset += num_frames

    def _update_buffers(self, input):
        """Store a block of input samples, growing or rewinding the history."""
        samples = np.asarray(input, dtype=_SAMPLE)
        num_frames = samples.shape[0]
        minimum = self._receptive_field + _INPUT_BUFFER_SAFETY_FACTOR * num_frames
        if self._input_buffer.shape[0] < minimum:
            size = 2
            while size < minimum:
                size *= 2
            self._input_buffer = np.zeros(size, dtype=_F)
        if self._input_buffer_offset + num_frames > self._input_buffer.shape[0]:
            self._rewind_buffers()
        offset = self._input_buffer_offset
        self._input_buffer[offset:offset + num_frames] = samples
        self._output_buffer = np.zeros(num_frames, dtype=_F)

    def _rewind_buffers(self):
        """Move the last receptive-field samples back to the buffer start."""
        rf = self._receptive_field
        offset = self._input_buffer_offset
        self._input_buffer[:rf] = self._input_buffer[offset - rf:offset].copy()
        self._input_buffer_offset = rf


class Linear(Buffer):
    """Linear model: an impulse response with an optional bias."""

    def __init__(self, receptive_field, bias, weights, expected_sample_rate=UNKNOWN_EXPECTED_SAMPLE_RATE):
        super().__init__(receptive_field, expected_sample_rate)
        weights = np.asarray(list(weights), dtype=_F)
        if weights.shape[0] != receptive_field + (1 if bias else 0):
            raise ValueError("Params vector does not match expected size based on architecture parameters")
        # Stored reversed so that a dot product with the history works directly.
        self._weight = weights[:receptive_field][::-1].copy()
        self._bias = weights[receptive_field] if bias else _F(0.0)

    def process(self, input):
        samples = np.asarray(input, dtype=_SAMPLE)
        num_frames = samples.shape[0]
        if num_frames == 0:
            return np.zeros(0, dtype=_SAMPLE)
        self._update_buffers(samples)
        rf = self._receptive_field
        start = self._input_buffer_offset - rf + 1
        segment = self._input_buffer[start:start + num_frames + rf - 1]
        windows = sliding_window_view(segment, rf)
        output = self._bias + windows @ self._weight
        self._advance_input_buffer(num_frames)
        return output.astype(_SAMPLE)


class Conv1D:
    """Dilated 1-D convolution over (channels, time) arrays."""

    def __init__(self):
        self._weight = np.zeros((0, 0, 0), dtype=_F)  # (kernel, out, in)
        self._bias = np.zeros(0, dtype=_F)
        self._dilation = 1

    def set_weights(self, weights):
        """Read weights, then bias, from the iterator ``weights``."""
        kernel_size, out_channels, in_channels = self._weight.shape
        if kernel_size > 0:
            values = _take_floats(weights, out_channels * in_channels * kernel_size)
            self._weight = np.ascontiguousarray(
                values.reshape(out_channels, in_channels, kernel_size).transpose(2, 0, 1)
            )
        if self._bias.shape[0] > 0:
            self._bias = _take_floats(weights, self._bias.shape[0])

    def set_size(self, in_channels, out_channels, kernel_size, do_bias, dilation):
        self._weight = np.zeros((kernel_size, out_channels, in_channels), dtype=_F)
        self._bias = np.zeros(out_channels if do_bias else 0, dtype=_F)
        self._dilation = int(dilation)

    def set_size_and_weights(self, in_channels, out_channels, kernel_size, dilation, do_bias, weights):
        self.set_size(in_channels, out_channels, kernel_size, do_bias, dilation)
        self.set_weights(weights)

    def process(self, input, output, i_start, ncols, j_start):
        """Write ``ncols`` output columns from ``j_start`` using input columns ending at ``i_start + ncols``."""
        kernel_size = self._weight.shape[0]
        target = output[:, j_start:j_start + ncols]
        for k in range(kernel_size):
            offset = self._dilation * (k + 1 - kernel_size)
            lo = i_start + offset
            contribution = self._weight[k] @ input[:, lo:lo + ncols]
            if k == 0:
                target[...] = contribution
            else:
                target += contribution
        if self._bias.shape[0] > 0:
            target += self._bias[:, None]

    @property
    def in_channels(self):
        return self._weight.shape[2] if self._weight.shape[0] > 0 else 0

    @property
    def out_channels(self):
        return self._weight.shape[1] if self._weight.shape[0] > 0 else 0

    @property
    def kernel_size(self):
        return self._weight.shape[0]

    @property
    def num_weights(self):
        return self._bias.size + self._weight.size

    @property
    def dilation(self):
        return self._dilation


class Conv1x1:
    """A per-column linear layer: ``y = W x + b``."""

    def __init__(self, in_channels, out_channels, bias):
        self._weight = np.zeros((out_channels, in_channels), dtype=_F)
        self._do_bias = bool(bias)
        self._bias = np.zeros(out_channels if bias else 0, dtype=_F)
        self._output = np.zeros((out_channels, 0), dtype=_F)

    def get_output(self, num_frames):
        """View of the first ``num_frames`` columns of the stored output."""
        return self._output[:, :num_frames]

    def set_max_buffer_size(self, max_buffer_size):
        self._output = np.zeros((self.out_channels, max_buffer_size), dtype=_F)

    def set_weights(self, weights):
        """Read the weight matrix (row-major), then bias, from the iterator ``weights``."""
        rows, cols = self._weight.shape
        self._weight = _take_floats(weights, rows * cols).reshape(rows, cols)
        if self._do_bias:
            self._bias = _take_floats(weights, self._bias.shape[0])

    def process(self, input, num_frames=None):
        """Return a new array for the first ``num_frames`` columns of ``input``."""
        input = np.asarray(input)
        if num_frames is None:
            num_frames = input.shape[1]
        result = self._weight @ input[:, :num_frames]
        if self._do_bias:
            result = result + self._bias[:, None]
        return result.astype(_F)

    def process_into(self, input, num_frames):
        """Compute into the preallocated output; read it with :meth:`get_output`."""
        if num_frames > self._output.shape[1]:
            raise ValueError(
                f"Asked to process {num_frames} frames but the buffer holds {self._output.shape[1]}"
            )
        target = self._output[:, :num_frames]
        np.matmul(self._weight, np.asarray(input, dtype=_F)[:, :num_frames], out=target)
        if self._do_bias:
            target += self._bias[:, None]

    @property
    def out_channels(self):
        return self._weight.shape[0]