"""Loading models from ``.nam`` files and building DSP objects from their data."""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field
from pathlib import Path

from .convnet import ConvNet
from .dsp import DSP, UNKNOWN_EXPECTED_SAMPLE_RATE, Linear
from .lstm import LSTM
from .wavenet import LayerArrayParams, WaveNet

__all__ = [
    "Version",
    "DspData",
    "parse_version",
    "verify_config_version",
    "get_weights",
    "load_dsp_data",
    "get_dsp",
    "get_dsp_with_data",
    "dsp_from_data",
]

_SUPPORTED_MAJOR = 0
_SUPPORTED_MINOR = 5
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class Version:
    """A semantic version number."""

    major: int
    minor: int
    patch: int


@dataclass
class DspData:
    """Everything a model file holds that is needed to build a DSP object.

    ``expected_sample_rate`` is -1 when the model does not say what rate it
    expects.
    """

    version: str
    architecture: str
    config: dict | None = None
    metadata: dict | None = None
    weights: list = field(default_factory=list)
    expected_sample_rate: float = UNKNOWN_EXPECTED_SAMPLE_RATE


def _parse_component(text, version_str):
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"Invalid version string: {version_str}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise ValueError(f"Version string out of range: {version_str}")
    return value


def parse_version(version_str):
    """Parse ``"major.minor.patch"`` into a :class:`Version`.

    Each component is read from its leading integer. Raises ValueError for a
    missing, malformed, out-of-range or negative component.
    """
    major_str, _, rest = version_str.partition(".")
    minor_str, _, patch_str = rest.partition(".")
    patch_str = patch_str.split("\n", 1)[0]
    version = Version(
        _parse_component(major_str, version_str),
        _parse_component(minor_str, version_str),
        _parse_component(patch_str, version_str),
    )
    if version.major < 0 or version.minor < 0 or version.patch < 0:
        raise ValueError(f"Negative version component: {version_str}")
    return version


def verify_config_version(version_str):
    """Raise ValueError unless ``version_str`` is a supported config version (0.5.x)."""
    version = parse_version(version_str)
    if version.major != _SUPPORTED_MAJOR or version.minor != _SUPPORTED_MINOR:
        raise ValueError(
            f"Model config is an unsupported version {version_str}. Try either converting "
            "the model to a more recent version, or update your version of the NAM plugin."
        )


def get_weights(model_json):
    """Return the weights of a parsed model file as a list of floats."""
    try:
        weights = model_json["weights"]
    except KeyError:
        raise ValueError("Corrupted model file is missing weights.") from None
    return [float(w) for w in weights]


def _require_str(model_json, key):
    value = model_json.get(key)
    if not isinstance(value, str):
        raise ValueError(f"Model file has no valid {key!r}")
    return value


def load_dsp_data(path):
    """Read a ``.nam`` file into a :class:`DspData`.

    Raises FileNotFoundError if the file is missing and ValueError if its
    content is not a supported model.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file doesn't exist: {path}")
    with path.open(encoding="utf-8") as stream:
        model_json = json.load(stream)
    version = _require_str(model_json, "version")
    verify_config_version(version)
    architecture = _require_str(model_json, "architecture")
    weights = get_weights(model_json)
    sample_rate = model_json.get("sample_rate", UNKNOWN_EXPECTED_SAMPLE_RATE) if "sample_rate" in model_json \
        else UNKNOWN_EXPECTED_SAMPLE_RATE
    return DspData(
        version=version,
        architecture=architecture,
        config=model_json.get("config"),
        metadata=model_json.get("metadata"),
        weights=weights,
        expected_sample_rate=float(sample_rate),
    )


def get_dsp(path):
    """Build the DSP object described by the ``.nam`` file at ``path``."""
    return dsp_from_data(load_dsp_data(path))


def get_dsp_with_data(path):
    """Return ``(dsp, data)``: the DSP built from ``path`` and the data read from it."""
    data = load_dsp_data(path)
    return dsp_from_data(copy.deepcopy(data)), data


def _require(config, key):
    if not isinstance(config, dict) or key not in config:
        raise ValueError(f"Model config is missing {key!r}")
    return config[key]


def _optional_metadata(metadata, key):
    if not isinstance(metadata, dict):
        return None
    value = metadata.get(key)
    return None if value is None else float(value)


def _build_linear(config, weights, sample_rate):
    return Linear(
        int(_require(config, "receptive_field")),
        bool(_require(config, "bias")),
        weights,
        sample_rate,
    )


def _build_convnet(config, weights, sample_rate):
    return ConvNet(
        int(_require(config, "channels")),
        [int(d) for d in _require(config, "dilations")],
        bool(_require(config, "batchnorm")),
        str(_require(config, "activation")),
        weights,
        sample_rate,
    )


def _build_lstm(config, weights, sample_rate):
    return LSTM(
        int(_require(config, "num_layers")),
        int(_require(config, "input_size")),
        int(_require(config, "hidden_size")),
        weights,
        sample_rate,
    )


def _build_wavenet(config, weights, sample_rate):
    params = [
        LayerArrayParams(
            input_size=int(_require(layer, "input_size")),
            condition_size=int(_require(layer, "condition_size")),
            head_size=int(_require(layer, "head_size")),
            channels=int(_require(layer, "channels")),
            kernel_size=int(_require(layer, "kernel_size")),
            dilations=tuple(_require(layer, "dilations")),
            activation=str(_require(layer, "activation")),
            gated=bool(_require(layer, "gated")),
            head_bias=bool(_require(layer, "head_bias")),
        )
        for layer in _require(config, "layers")
    ]
    with_head = config.get("head") is not None
    head_scale = float(_require(config, "head_scale"))
    return WaveNet(params, head_scale, with_head, weights, sample_rate)


_BUILDERS = {
    "Linear": _build_linear,
    "ConvNet": _build_convnet,
    "LSTM": _build_lstm,
    "WaveNet": _build_wavenet,
}


def dsp_from_data(conf) -> DSP:
    """Build and prewarm a DSP object from a :class:`DspData`."""
    verify_config_version(conf.version)
    try:
        builder = _BUILDERS[conf.architecture]
    except KeyError:
        raise ValueError(f"Unrecognized architecture: {conf.architecture!r}") from None

    loudness = _optional_metadata(conf.metadata, "loudness")
    input_level = _optional_metadata(conf.metadata, "input_level_dbu")
    output_level = _optional_metadata(conf.metadata, "output_level_dbu")

    dsp = builder(conf.config, conf.weights, conf.expected_sample_rate)
    if loudness is not None:
        dsp.loudness = loudness
    if input_level is not None:
        dsp.input_level = input_level
    if output_level is not None:
        dsp.output_level = output_level

    dsp.prewarm()
    return dsp