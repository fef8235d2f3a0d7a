import numpy as np
import pytest

from namcore.activations import disable_fast_tanh, enable_fast_tanh
from namcore.lstm import LSTM, LSTMCell


def _num_weights(num_layers, input_size, hidden_size):
    total = 0
    for index in range(num_layers):
        in_size = input_size if index == 0 else hidden_size
        total += 4 * hidden_size * (in_size + hidden_size) + 4 * hidden_size + 2 * hidden_size
    return total + hidden_size + 1


def _random_weights(num_layers, hidden_size, seed, scale=0.5):
    rng = np.random.default_rng(seed)
    return (rng.normal(size=_num_weights(num_layers, 1, hidden_size)) * scale).tolist()


def test_no_layers_passes_input_through():
    model = LSTM(0, 1, 3, [0.0] * 4)
    inputs = [0.1, -0.2, 0.3]
    np.testing.assert_array_equal(model.process(inputs), inputs)


def test_zero_weights_give_head_bias():
    bias = 0.25
    weights = [0.0] * (_num_weights(2, 1, 3) - 1) + [bias]
    model = LSTM(2, 1, 3, weights)
    out = model.process([0.5, -1.0, 2.0, 0.0])
    np.testing.assert_allclose(out, [bias] * 4)


def test_output_dtype_and_length():
    model = LSTM(1, 1, 2, _random_weights(1, 2, seed=0))
    out = model.process(np.zeros(5))
    assert out.dtype == np.float64
    assert out.shape == (5,)


def test_too_many_weights_raises():
    with pytest.raises(ValueError):
        LSTM(1, 1, 2, [0.0] * (_num_weights(1, 1, 2) + 1))


def test_too_few_weights_raises():
    with pytest.raises(ValueError):
        LSTM(1, 1, 2, [0.0] * (_num_weights(1, 1, 2) - 1))


@pytest.mark.parametrize(
    ("rate", "expected"),
    [(48000.0, 24000), (-1.0, 1), (1.0, 1)],
)
def test_prewarm_samples(rate, expected):
    model = LSTM(0, 1, 1, [0.0, 0.0], expected_sample_rate=rate)
    assert model.prewarm_samples() == expected


def test_streaming_matches_single_call():
    weights = _random_weights(2, 4, seed=7)
    signal = np.random.default_rng(8).normal(size=60)
    whole = LSTM(2, 1, 4, weights).process(signal)
    model = LSTM(2, 1, 4, weights)
    chunked = np.concatenate([model.process(signal[i:i + 7]) for i in range(0, 60, 7)])
    np.testing.assert_allclose(chunked, whole)


def test_same_weights_same_output():
    weights = _random_weights(1, 3, seed=3)
    signal = np.linspace(-1.0, 1.0, 20)
    a = LSTM(1, 1, 3, weights).process(signal)
    b = LSTM(1, 1, 3, weights).process(signal)
    np.testing.assert_array_equal(a, b)


def test_fast_tanh_is_close_to_exact():
    weights = _random_weights(1, 3, seed=11)
    signal = np.sin(np.linspace(0.0, 6.0, 40))
    exact = LSTM(1, 1, 3, weights).process(signal)
    enable_fast_tanh()
    try:
        fast = LSTM(1, 1, 3, weights).process(signal)
    finally:
        disable_fast_tanh()
    np.testing.assert_allclose(fast, exact, atol=0.05)


def test_cell_initial_hidden_and_cell_state():
    hidden = [0.1, -0.2]
    cell = [0.3, 0.4]
    weights = [0.0] * (8 * 3) + [0.0] * 8 + hidden + cell + [99.0]
    it = iter(weights)
    lstm_cell = LSTMCell(1, 2, it)
    np.testing.assert_allclose(lstm_cell.hidden_state, hidden)
    np.testing.assert_allclose(lstm_cell.cell_state, cell)
    assert list(it) == [99.0]


def test_cell_hidden_state_is_a_copy():
    lstm_cell = LSTMCell(1, 2, iter([0.0] * (8 * 3 + 8) + [0.5, 0.5] + [0.0, 0.0]))
    state = lstm_cell.hidden_state
    state[:] = 7.0
    np.testing.assert_allclose(lstm_cell.hidden_state, [0.5, 0.5])


def test_cell_hidden_state_bounded():
    rng = np.random.default_rng(5)
    hidden_size = 4
    count = 4 * hidden_size * (1 + hidden_size) + 4 * hidden_size + 2 * hidden_size
    lstm_cell = LSTMCell(1, hidden_size, iter((rng.normal(size=count) * 5.0).tolist()))
    states = []
    for x in rng.normal(size=30) * 10.0:
        lstm_cell.process([x])
        states.append(np.array(lstm_cell.hidden_state, copy=True))
    stacked = np.stack(states)
    assert stacked.shape == (30, hidden_size)
    assert float(np.abs(stacked).max()) <= 1.0


def test_cell_rejects_wrong_input_size():
    lstm_cell = LSTMCell(1, 2, iter([0.0] * (8 * 3 + 8 + 4)))
    with pytest.raises(ValueError):
        lstm_cell.process([0.1, 0.2])


def test_cell_requires_iterator():
    with pytest.raises(TypeError):
        LSTMCell(1, 1, [0.0] * (4 * 2 + 4 + 2))