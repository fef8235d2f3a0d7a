import numpy as np
import pytest

from namcore.convnet import BatchNorm, ConvNet, ConvNetBlock, ConvNetHead


def _num_weights(channels, dilations, batchnorm):
    total = 0
    for index, _ in enumerate(dilations):
        in_channels = 1 if index == 0 else channels
        total += channels * in_channels * 2
        total += 4 * channels + 1 if batchnorm else channels
    return total + channels + 1


def test_delayed_identity_with_relu():
    # conv: weight on x[t-1] = 1, weight on x[t] = 0, bias 0; head: weight 1, bias 0
    model = ConvNet(1, [1], False, "ReLU", [1.0, 0.0, 0.0, 1.0, 0.0])
    out = model.process([0.5, 0.25, -1.0, 0.75])
    np.testing.assert_array_equal(out, [0.0, 0.5, 0.25, 0.0])


def test_current_sample_identity_with_relu():
    model = ConvNet(1, [1], False, "ReLU", [0.0, 1.0, 0.0, 1.0, 0.0])
    out = model.process([0.5, -0.5, 0.25])
    np.testing.assert_array_equal(out, [0.5, 0.0, 0.25])


def test_conv_bias_is_added_before_activation():
    model = ConvNet(1, [1], False, "ReLU", [0.0, 1.0, 0.5, 1.0, 0.0])
    inputs = np.array([-1.0, 0.25, -0.25])
    out = model.process(inputs)
    np.testing.assert_allclose(out, np.maximum(inputs + 0.5, 0.0))


def test_output_dtype_and_length():
    model = ConvNet(1, [1], False, "ReLU", [0.0, 1.0, 0.0, 1.0, 0.0])
    out = model.process(np.zeros(7))
    assert out.dtype == np.float64
    assert out.shape == (7,)


def test_chunked_processing_matches_single_call():
    channels, dilations = 3, [1, 2, 4]
    rng = np.random.default_rng(1234)
    weights = (rng.normal(size=_num_weights(channels, dilations, False)) * 0.5).tolist()
    signal = rng.normal(size=800)

    whole = ConvNet(channels, dilations, False, "Tanh", weights)
    expected = whole.process(signal)

    chunked = ConvNet(channels, dilations, False, "Tanh", weights)
    pieces = [chunked.process(signal[i:i + 8]) for i in range(0, 800, 8)]
    np.testing.assert_allclose(np.concatenate(pieces), expected, rtol=1e-5, atol=1e-6)


def test_batchnorm_identity_network():
    # conv (no bias): [0, 1]; BN: mean 0, var 0, weight 1, bias 0, eps 1; head [1, 0]
    weights = [0.0, 1.0, 0.0, 0.0, 1.0, 0.0, 1.0, 1.0, 0.0]
    assert len(weights) == _num_weights(1, [1], True)
    model = ConvNet(1, [1], True, "ReLU", weights)
    out = model.process([0.5, -0.5, 0.75])
    np.testing.assert_allclose(out, [0.5, 0.0, 0.75])


def test_prewarm_samples():
    channels, dilations = 2, [1, 2, 4]
    weights = [0.0] * _num_weights(channels, dilations, False)
    model = ConvNet(channels, dilations, False, "Tanh", weights)
    assert model.prewarm_samples() == 1 + sum(dilations)


def test_too_many_weights_raises():
    weights = [0.0] * (_num_weights(2, [1, 2], False) + 1)
    with pytest.raises(ValueError):
        ConvNet(2, [1, 2], False, "Tanh", weights)


def test_too_few_weights_raises():
    weights = [0.0] * (_num_weights(2, [1, 2], False) - 1)
    with pytest.raises(ValueError):
        ConvNet(2, [1, 2], False, "Tanh", weights)


def test_unknown_activation_raises():
    with pytest.raises(KeyError):
        ConvNet(1, [1], False, "NoSuchActivation", [0.0] * 5)


def test_empty_dilations_raises():
    with pytest.raises(ValueError):
        ConvNet(1, [], False, "Tanh", [0.0, 0.0])


def test_reset_then_process_keeps_streaming():
    model = ConvNet(1, [1], False, "ReLU", [1.0, 0.0, 0.0, 1.0, 0.0])
    model.reset(48000.0, 16)
    assert model.max_buffer_size == 16
    first = model.process([0.5, 0.25])
    second = model.process([0.75])
    np.testing.assert_array_equal(first, [0.0, 0.5])
    np.testing.assert_array_equal(second, [0.25])


def test_batchnorm_identity():
    bn = BatchNorm(2, iter([0.0, 0.0, 0.0, 0.0, 1.0, 1.0, 0.0, 0.0, 1.0]))
    x = np.array([[0.5, -1.0, 2.0], [0.25, 3.0, -0.75]], dtype=np.float32)
    original = x.copy()
    bn.process(x, 0, 3)
    np.testing.assert_allclose(x, original)


def test_batchnorm_only_touches_requested_columns():
    mean, bias = 0.5, 0.25
    # var 3, weight 2, eps 1 -> scale exactly 1
    bn = BatchNorm(1, iter([mean, 3.0, 2.0, bias, 1.0]))
    x = np.array([[1.0, 2.0, 3.0, 4.0]], dtype=np.float32)
    bn.process(x, 1, 3)
    np.testing.assert_allclose(x, [[1.0, 2.0 - mean + bias, 3.0 - mean + bias, 4.0]])


def test_batchnorm_consumes_exact_weights():
    it = iter([0.0, 1.0, 1.0, 0.0, 1.0, 42.0])
    BatchNorm(1, it)
    assert list(it) == [42.0]


def test_block_out_channels_and_weight_consumption():
    block = ConvNetBlock()
    it = iter([0.0] * (3 * 1 * 2 + 3) + [7.0])
    block.set_weights(1, 3, 2, False, "Tanh", it)
    assert block.out_channels == 3
    assert block.conv.dilation == 2
    assert list(it) == [7.0]


def test_block_process_writes_only_range():
    block = ConvNetBlock()
    block.set_weights(1, 1, 1, False, "ReLU", iter([0.0, 1.0, 0.0]))
    inp = np.array([[0.0, 0.5, -0.5, 0.25]], dtype=np.float32)
    out = np.full((1, 4), 9.0, dtype=np.float32)
    block.process(inp, out, 1, 3)
    np.testing.assert_array_equal(out, [[9.0, 0.5, 0.0, 9.0]])


def test_block_without_weights_raises():
    block = ConvNetBlock()
    with pytest.raises(RuntimeError):
        block.process(np.zeros((1, 4), np.float32), np.zeros((1, 4), np.float32), 1, 3)


def test_head_selects_weighted_row():
    head = ConvNetHead(2, iter([1.0, 0.0, 0.0]))
    inp = np.array([[0.5, 0.25, -1.0], [3.0, 4.0, 5.0]], dtype=np.float32)
    np.testing.assert_array_equal(head.process(inp, 1, 3), [0.25, -1.0])