"""Dilated convolutional network model with optional batch normalisation."""

from __future__ import annotations

import numpy as np

from .activations import get_activation
from .dsp import UNKNOWN_EXPECTED_SAMPLE_RATE, Buffer, Conv1D, _take_floats

__all__ = ["BatchNorm", "ConvNetBlock", "ConvNetHead", "ConvNet"]

_F = np.float32
_SAMPLE = np.float64
_KERNEL_SIZE = 2
_END = object()


class BatchNorm:
    """Inference-mode batch normalisation, reduced to ``y = scale * x + loc``."""

    def __init__(self, dim, weights):
        running_mean = _take_floats(weights, dim)
        running_var = _take_floats(weights, dim)
        weight = _take_floats(weights, dim)
        bias = _take_floats(weights, dim)
        eps = _take_floats(weights, 1)[0]
        self.scale = (weight / np.sqrt(eps + running_var)).astype(_F)
        self.loc = (bias - self.scale * running_mean).astype(_F)

    def process(self, x, i_start, i_end):
        """Normalise columns ``i_start`` to ``i_end`` of ``x`` in place."""
        block = x[:, i_start:i_end]
        block *= self.scale[:, None]
        block += self.loc[:, None]


class ConvNetBlock:
    """Kernel-2 dilated convolution, optional batch norm, then an activation."""

    def __init__(self):
        self.conv = Conv1D()
        self._batchnorm: BatchNorm | None = None
        self._activation = None

    def set_weights(self, in_channels, out_channels, dilation, batchnorm, activation, weights):
        """Size the block and read its parameters from the iterator ``weights``."""
        self.conv.set_size_and_weights(
            in_channels, out_channels, _KERNEL_SIZE, dilation, not batchnorm, weights
        )
        self._batchnorm = BatchNorm(out_channels, weights) if batchnorm else None
        self._activation = get_activation(activation)

    def process(self, input, output, i_start, i_end):
        """Fill columns ``i_start`` to ``i_end`` of ``output`` from ``input``."""
        if self._activation is None:
            raise RuntimeError("Block weights have not been set")
        ncols = i_end - i_start
        self.conv.process(input, output, i_start, ncols, i_start)
        if self._batchnorm is not None:
            self._batchnorm.process(output, i_start, i_end)
        self._activation.apply(output[:, i_start:i_end])

    @property
    def out_channels(self):
        return self.conv.out_channels


class ConvNetHead:
    """Linear projection of each column down to a single output value."""

    def __init__(self, channels, weights):
        self._weight = _take_floats(weights, channels)
        self._bias = _take_floats(weights, 1)[0]

    def process(self, input, i_start, i_end):
        """Return the projected values of columns ``i_start`` to ``i_end``."""
        return (self._bias + self._weight @ input[:, i_start:i_end]).astype(_F)


class ConvNet(Buffer):
    """Stack of dilated convolution blocks followed by a linear head."""

    def __init__(
        self,
        channels,
        dilations,
        batchnorm,
        activation,
        weights,
        expected_sample_rate=UNKNOWN_EXPECTED_SAMPLE_RATE,
    ):
        dilations = [int(d) for d in dilations]
        if not dilations:
            raise ValueError("ConvNet needs at least one dilation")
        super().__init__(max(dilations), expected_sample_rate)
        it = iter(list(weights))
        self._blocks = []
        for index, dilation in enumerate(dilations):
            block = ConvNetBlock()
            block.set_weights(
                1 if index == 0 else channels, channels, dilation, batchnorm, activation, it
            )
            self._blocks.append(block)
        self._block_vals = [np.zeros((0, 0), dtype=_F) for _ in range(len(self._blocks) + 1)]
        self._head = ConvNetHead(channels, it)
        if next(it, _END) is not _END:
            raise ValueError("Didn't touch all the weights when initializing ConvNet")
        self._prewarm_samples = 1 + sum(dilations)

    def process(self, input):
        samples = np.asarray(input, dtype=_SAMPLE)
        num_frames = samples.shape[0]
        self._update_buffers(samples)
        i_start = self._input_buffer_offset
        i_end = i_start + num_frames
        self._block_vals[0][0, i_start:i_end] = self._input_buffer[i_start:i_end]
        for block, source, target in zip(self._blocks, self._block_vals, self._block_vals[1:]):
            block.process(source, target, i_start, i_end)
        output = self._head.process(self._block_vals[-1], i_start, i_end)
        self._advance_input_buffer(num_frames)
        return output.astype(_SAMPLE)

    def prewarm_samples(self):
        return self._prewarm_samples

    def _update_buffers(self, input):
        super()._update_buffers(input)
        size = self._input_buffer.shape[0]
        rows = [1] + [block.out_channels for block in self._blocks]
        self._block_vals = [
            vals if vals.shape == (count, size) else np.zeros((count, size), dtype=_F)
            for vals, count in zip(self._block_vals, rows)
        ]

    def _rewind_buffers(self):
        # The block values must be pulled back before the base class resets the offset.
        # The last entry is the final block's output and needs no history.
        rf = self._receptive_field
        offset = self._input_buffer_offset
        for block, vals in zip(self._blocks, self._block_vals):
            dilation = block.conv.dilation
            vals[:, rf - dilation:rf] = vals[:, offset - dilation:offset].copy()
        super()._rewind_buffers()