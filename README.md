# namcore

Run neural amp models (`.nam` files) on audio buffers from Python. A model is
loaded from its JSON description and then fed blocks of samples as NumPy
arrays; each call to `process` returns the processed block as a new
double-precision array. Weights and internal state are single precision.

Supported architectures (built by `namcore.get_dsp`):

- `Linear` (`namcore.dsp.Linear`) – an impulse response with optional bias
- `ConvNet` (`namcore.convnet.ConvNet`) – kernel-2 dilated convolutions with
  optional batch normalisation and a linear head
- `LSTM` (`namcore.lstm.LSTM`) – stacked LSTM cells with a linear head
- `WaveNet` (`namcore.wavenet.WaveNet`) – layer arrays of dilated, optionally
  gated convolutions

Model files must carry a config version of `0.5.x`; any other version raises
`ValueError`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

```python
import numpy as np
from namcore.get_dsp import get_dsp

model = get_dsp("my_amp.nam")            # built and prewarmed
model.reset(model.expected_sample_rate, 64)

block = np.zeros(64)
out = model.process(block)
```

`reset(sample_rate, max_buffer_size)` records the host sample rate and the
largest block size, then prewarms the model by running silence through it.
A `WaveNet` refuses blocks longer than its maximum buffer size.

`get_dsp_with_data(path)` returns `(dsp, data)`, where `data` is the parsed
`DspData` (version, architecture, config, metadata, weights and expected
sample rate; -1 when the file gives none). `load_dsp_data(path)` reads the
file without building a model, and `dsp_from_data(conf)` builds and prewarms
a model from a `DspData`. A missing file raises `FileNotFoundError`; an
unsupported version, unknown architecture or wrong weight count raises
`ValueError`.

Models whose metadata carries calibration expose it as properties:
`has_loudness` / `loudness` (reading `loudness` when unknown raises
`RuntimeError`), `has_input_level` / `input_level` and
`has_output_level` / `output_level` (0.0 when unknown).

Activations are looked up by name with `namcore.activations.get_activation`
(`"Tanh"`, `"Hardtanh"`, `"Fasttanh"`, `"ReLU"`, `"LeakyReLU"`, `"Sigmoid"`)
and work in place on arrays. A fast `tanh` approximation can replace the
exact one, both for `"Tanh"` and inside the LSTM cells:

```python
from namcore.activations import enable_fast_tanh, disable_fast_tanh

enable_fast_tanh()
```

## Command line

Check that a model loads (exit status 1 if it does not):

```
namcore-loadmodel my_amp.nam
```

Time two seconds of silence at 48 kHz in 64-sample blocks, with the fast
`tanh` enabled; prints the elapsed time in milliseconds:

```
namcore-benchmodel my_amp.nam
```

## What it does not do

- No audio input or output: it reads no sound files and opens no sound
  devices. You supply and consume the sample arrays.
- No `CatLSTM` or `CatWaveNet` models, although `namcore.dsp.Architecture`
  names them; loading such a file raises `ValueError`.
- No WaveNet post-head: a WaveNet config with a `head` raises
  `NotImplementedError`.