"""WaveNet model: stacks of dilated, optionally gated, convolution layers."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .activations import get_activation
from .dsp import DSP, UNKNOWN_EXPECTED_SAMPLE_RATE, Conv1D, Conv1x1, _take_floats

__all__ = [
    "LAYER_ARRAY_BUFFER_SIZE",
    "DilatedConv",
    "Layer",
    "LayerArrayParams",
    "LayerArray",
    "Head",
    "WaveNet",
]

_F = np.float32
_SAMPLE = np.float64
_END = object()

LAYER_ARRAY_BUFFER_SIZE = 65536


class DilatedConv(Conv1D):
    """A :class:`Conv1D` sized at construction."""

    def __init__(self, in_channels, out_channels, kernel_size, bias, dilation):
        super().__init__()
        self.set_size(in_channels, out_channels, kernel_size, bias, dilation)


class Layer:
    """Dilated conv plus condition mix-in, activation (optionally gated) and a 1x1 residual."""

    def __init__(self, condition_size, channels, kernel_size, dilation, activation, gated):
        self._gated = bool(gated)
        conv_out = 2 * channels if self._gated else channels
        self._conv = DilatedConv(channels, conv_out, kernel_size, True, dilation)
        self._input_mixin = Conv1x1(condition_size, conv_out, False)
        self._1x1 = Conv1x1(channels, channels, True)
        self._activation = get_activation(activation)
        self._sigmoid = get_activation("Sigmoid")
        self._z = np.zeros((conv_out, 0), dtype=_F)

    def set_max_buffer_size(self, max_buffer_size):
        self._input_mixin.set_max_buffer_size(max_buffer_size)
        self._z = np.zeros((self._conv.out_channels, max_buffer_size), dtype=_F)
        self._1x1.set_max_buffer_size(max_buffer_size)

    def set_weights(self, weights):
        """Read conv, mix-in and 1x1 parameters from the iterator ``weights``."""
        self._conv.set_weights(weights)
        self._input_mixin.set_weights(weights)
        self._1x1.set_weights(weights)

    def process(self, input, condition, head_input, output, i_start, j_start, num_frames):
        """Run ``num_frames`` columns; add to ``head_input`` and write ``output`` from ``j_start``."""
        n = int(num_frames)
        if self._z.shape[1] < n:
            raise ValueError(
                f"Asked to process {n} frames but the layer is sized for {self._z.shape[1]}"
            )
        channels = self.channels
        self._conv.process(input, self._z, i_start, n, 0)
        self._input_mixin.process_into(condition, n)
        z = self._z[:, :n]
        z += self._input_mixin.get_output(n)

        if self._gated:
            self._activation.apply(z[:channels])
            self._sigmoid.apply(z[channels:])
            z[:channels] *= z[channels:]
        else:
            self._activation.apply(z)

        head_input[:, :n] += z[:channels]
        self._1x1.process_into(self._z[:channels], n)
        output[:, j_start:j_start + n] = input[:, i_start:i_start + n] + self._1x1.get_output(n)

    def set_num_frames(self, num_frames):
        """Make sure the internal arrays can hold ``num_frames`` columns."""
        n = int(num_frames)
        if self._input_mixin.get_output(n).shape[1] < n:
            self._input_mixin.set_max_buffer_size(n)
        if self._1x1.get_output(n).shape[1] < n:
            self._1x1.set_max_buffer_size(n)
        shape = (self._conv.out_channels, n)
        if self._z.shape != shape:
            self._z = np.zeros(shape, dtype=_F)

    @property
    def channels(self):
        return self._conv.in_channels

    @property
    def dilation(self):
        return self._conv.dilation

    @property
    def kernel_size(self):
        return self._conv.kernel_size


@dataclass(frozen=True)
class LayerArrayParams:
    """Configuration of one :class:`LayerArray`."""

    input_size: int
    condition_size: int
    head_size: int
    channels: int
    kernel_size: int
    dilations: tuple
    activation: str
    gated: bool
    head_bias: bool

    def __post_init__(self):
        object.__setattr__(self, "dilations", tuple(int(d) for d in self.dilations))


class LayerArray:
    """Layers sharing channels, kernel size and activation, with rechannel layers on both ends."""

    def __init__(
        self,
        input_size,
        condition_size,
        head_size,
        channels,
        kernel_size,
        dilations,
        activation,
        gated,
        head_bias,
    ):
        self._rechannel = Conv1x1(input_size, channels, False)
        self._head_rechannel = Conv1x1(channels, head_size, head_bias)
        self._layers = [
            Layer(condition_size, channels, kernel_size, dilation, activation, gated)
            for dilation in dilations
        ]
        width = LAYER_ARRAY_BUFFER_SIZE + self._one_indexed_receptive_field() - 1
        self._layer_buffers = [np.zeros((channels, width), dtype=_F) for _ in self._layers]
        self._buffer_start = self._one_indexed_receptive_field() - 1

    def set_max_buffer_size(self, max_buffer_size):
        self._rechannel.set_max_buffer_size(max_buffer_size)
        self._head_rechannel.set_max_buffer_size(max_buffer_size)
        for layer in self._layers:
            layer.set_max_buffer_size(max_buffer_size)

    def advance_buffers(self, num_frames):
        self._buffer_start += int(num_frames)

    def prepare_for_frames(self, num_frames):
        """Rewind the layer buffers if ``num_frames`` more would run off their end."""
        if self._buffer_start + num_frames > self._buffer_size():
            self._rewind_buffers()

    def process(self, layer_inputs, condition, head_inputs, layer_outputs, head_outputs, num_frames):
        """Run all layers; the last writes ``layer_outputs`` and the head result goes to ``head_outputs``."""
        n = int(num_frames)
        start = self._buffer_start
        self._rechannel.process_into(layer_inputs, n)
        if self._layers:
            self._layer_buffers[0][:, start:start + n] = self._rechannel.get_output(n)
        last = len(self._layers) - 1
        for index, layer in enumerate(self._layers):
            is_last = index == last
            layer.process(
                self._layer_buffers[index],
                condition,
                head_inputs,
                layer_outputs if is_last else self._layer_buffers[index + 1],
                start,
                0 if is_last else start,
                n,
            )
        self._head_rechannel.process_into(head_inputs, n)
        head_outputs[:, :n] = self._head_rechannel.get_output(n)

    def set_num_frames(self, num_frames):
        rf = self._one_indexed_receptive_field()
        if LAYER_ARRAY_BUFFER_SIZE - num_frames < rf:
            raise RuntimeError(
                f"Asked to accept a buffer of {num_frames} samples, but the buffer is too short "
                f"({LAYER_ARRAY_BUFFER_SIZE}) to get out of the receptive field ({rf}); "
                "copy errors could occur!"
            )
        for layer in self._layers:
            layer.set_num_frames(num_frames)

    def set_weights(self, weights):
        """Read rechannel, layer and head-rechannel parameters from the iterator ``weights``."""
        self._rechannel.set_weights(weights)
        for layer in self._layers:
            layer.set_weights(weights)
        self._head_rechannel.set_weights(weights)

    @property
    def receptive_field(self):
        """Zero-indexed receptive field: a 1x1 convolution has zero."""
        return sum(layer.dilation * (layer.kernel_size - 1) for layer in self._layers)

    @property
    def channels(self):
        return self._layers[0].channels if self._layers else 0

    def _one_indexed_receptive_field(self):
        return 1 + self.receptive_field

    def _buffer_size(self):
        return self._layer_buffers[0].shape[1] if self._layer_buffers else 0

    def _rewind_buffers(self):
        start = self._one_indexed_receptive_field() - 1
        for layer, buffer in zip(self._layers, self._layer_buffers):
            d = (layer.kernel_size - 1) * layer.dilation
            buffer[:, start - d:start] = buffer[:, self._buffer_start - d:self._buffer_start].copy()
        self._buffer_start = start


class Head:
    """A stack of activation-then-1x1 layers ending in a single channel."""

    def __init__(self, input_size, num_layers, channels, activation):
        if num_layers <= 0:
            raise ValueError("Head needs at least one layer")
        self._channels = int(channels)
        self._activation = get_activation(activation)
        self._layers = []
        dx = input_size
        for index in range(num_layers):
            self._layers.append(Conv1x1(dx, 1 if index == num_layers - 1 else channels, True))
            dx = channels
        self._buffers = [np.zeros((0, 0), dtype=_F) for _ in range(num_layers - 1)]

    def reset(self, sample_rate, max_buffer_size):
        self.set_num_frames(max_buffer_size)

    def set_weights(self, weights):
        for layer in self._layers:
            layer.set_weights(weights)

    def process(self, inputs):
        """Return the head output; the activation is applied to ``inputs`` in place."""
        x = inputs
        last = len(self._layers) - 1
        for index, layer in enumerate(self._layers):
            self._activation.apply(x)
            x = layer.process(x)
            if index < last:
                self._buffers[index] = x
        return x

    def set_num_frames(self, num_frames):
        shape = (self._channels, int(num_frames))
        self._buffers = [
            buffer if buffer.shape == shape else np.zeros(shape, dtype=_F) for buffer in self._buffers
        ]


class WaveNet(DSP):
    """Chain of layer arrays whose head outputs are summed into a mono signal."""

    def __init__(
        self,
        layer_array_params,
        head_scale,
        with_head,
        weights,
        expected_sample_rate=UNKNOWN_EXPECTED_SAMPLE_RATE,
    ):
        super().__init__(expected_sample_rate)
        self._head_scale = _F(head_scale)
        if with_head:
            raise NotImplementedError("Head not implemented!")
        params = list(layer_array_params)
        self._layer_arrays = []
        self._layer_array_outputs = []
        self._head_arrays = []
        for index, p in enumerate(params):
            if index > 0 and p.channels != params[index - 1].head_size:
                raise ValueError(
                    f"channels of layer {index} ({p.channels}) doesn't match head_size of "
                    f"preceding layer ({params[index - 1].head_size})!"
                )
            self._layer_arrays.append(
                LayerArray(
                    p.input_size,
                    p.condition_size,
                    p.head_size,
                    p.channels,
                    p.kernel_size,
                    p.dilations,
                    p.activation,
                    p.gated,
                    p.head_bias,
                )
            )
            self._layer_array_outputs.append(np.zeros((p.channels, 0), dtype=_F))
            if index == 0:
                self._head_arrays.append(np.zeros((p.channels, 0), dtype=_F))
            self._head_arrays.append(np.zeros((p.head_size, 0), dtype=_F))
        self._condition = np.zeros((self._condition_dim(), 0), dtype=_F)
        self._head_output = np.zeros((1, 0), dtype=_F)
        self.set_weights(weights)
        self._prewarm_samples = 1 + sum(array.receptive_field for array in self._layer_arrays)

    @property
    def head_scale(self):
        return float(self._head_scale)

    def set_weights(self, weights):
        """Load all parameters from ``weights``; the final value is the head scale."""
        values = list(weights)
        it = iter(values)
        try:
            for array in self._layer_arrays:
                array.set_weights(it)
            self._head_scale = _take_floats(it, 1)[0]
        except ValueError:
            raise ValueError(
                f"Weight mismatch: provided {len(values)} weights, but the model expects more."
            ) from None
        leftover = sum(1 for _ in it)
        if leftover:
            raise ValueError(
                f"Weight mismatch: assigned {len(values) - leftover} weights, "
                f"but {len(values)} were provided."
            )

    def set_max_buffer_size(self, max_buffer_size):
        super().set_max_buffer_size(max_buffer_size)
        n = int(max_buffer_size)
        self._condition = np.zeros((self._condition_dim(), n), dtype=_F)
        self._head_arrays = [np.zeros((a.shape[0], n), dtype=_F) for a in self._head_arrays]
        self._layer_array_outputs = [
            np.zeros((a.shape[0], n), dtype=_F) for a in self._layer_array_outputs
        ]
        self._head_output = np.zeros((self._head_output.shape[0], n), dtype=_F)
        for array in self._layer_arrays:
            array.set_max_buffer_size(n)

    def process(self, input):
        samples = np.asarray(input, dtype=_SAMPLE)
        n = samples.shape[0]
        if n > self.max_buffer_size:
            raise ValueError(
                f"Asked to process {n} frames but the maximum buffer size is {self.max_buffer_size}"
            )
        if not self._layer_arrays:
            raise RuntimeError("WaveNet has no layer arrays")
        final = self._head_arrays[-1]
        if final.shape[0] != 1:
            raise RuntimeError("The last layer array must have a head size of 1")

        for array in self._layer_arrays:
            array.prepare_for_frames(n)
        self._set_condition_array(samples)

        self._head_arrays[0][...] = 0.0
        for index, array in enumerate(self._layer_arrays):
            array.process(
                self._condition if index == 0 else self._layer_array_outputs[index - 1],
                self._condition,
                self._head_arrays[index],
                self._layer_array_outputs[index],
                self._head_arrays[index + 1],
                n,
            )
        output = (self._head_scale * self._head_arrays[-1][0, :n]).astype(_F)

        for array in self._layer_arrays:
            array.advance_buffers(n)
        return output.astype(_SAMPLE)

    def prewarm_samples(self):
        return self._prewarm_samples

    def _set_condition_array(self, samples):
        self._condition[0, :samples.shape[0]] = samples

    def _condition_dim(self):
        return 1