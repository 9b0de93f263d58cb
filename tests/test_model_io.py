from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

from tagml.core.exceptions import ModelFormatError
from tagml.model import Context, Model, ModelType, load_model, save_model
from tagml.model.io import (
    BinaryDataReader,
    BinaryDataWriter,
    ModelReader,
    ModelWriter,
    PlainTextDataReader,
    PlainTextDataWriter,
    decode_modified_utf8,
    encode_modified_utf8,
)


def _gis_model() -> Model:
    params = [
        Context([0, 1], [0.5, -0.25]),
        Context([1], [2.0]),
        Context([0, 1], [1.0, 1.0e-12]),
    ]
    return Model(params, ["p1", "p2", "p3"], ["A", "B"], ModelType.GIS)


def _binary_bytes(model: Model) -> bytes:
    buffer = io.BytesIO()
    ModelWriter(model, BinaryDataWriter(buffer)).persist()
    return buffer.getvalue()


def test_plain_text_layout(tmp_path: Path) -> None:
    path = save_model(_gis_model(), tmp_path / "model.txt")
    lines = path.read_text(encoding="utf-8").splitlines()

    assert lines[:6] == ["GIS", "1", "1.0", "2", "A", "B"]
    # two outcome patterns: [0 1] shared by p1 and p3, then [1]
    assert lines[6:9] == ["2", "2 0 1", "1 1"]
    assert lines[9:13] == ["3", "p1", "p3", "p2"]
    assert [float(v) for v in lines[13:]] == [0.5, -0.25, 1.0, 1.0e-12, 2.0]


@pytest.mark.parametrize("name", ["model.txt", "model.bin", "model.txt.gz", "model.bin.gz"])
def test_save_and_load(tmp_path: Path, name: str) -> None:
    model = _gis_model()
    restored = load_model(save_model(model, tmp_path / name))

    assert restored == model
    assert restored.model_type is ModelType.GIS
    assert restored.eval(["p1", "p2"]).tolist() == pytest.approx(model.eval(["p1", "p2"]).tolist())


def test_explicit_encoding_overrides_suffix(tmp_path: Path) -> None:
    path = save_model(_gis_model(), tmp_path / "model.dat", binary=True)
    assert path.read_bytes()[:5] == b"\x00\x03GIS"
    assert load_model(path, binary=True) == _gis_model()


def test_perceptron_models_are_written_compacted(tmp_path: Path) -> None:
    params = [Context([0, 1], [0.0, 1.5]), Context([0, 1], [0.0, 0.0])]
    model = Model(params, ["p", "empty"], ["A", "B"], ModelType.PERCEPTRON)

    restored = load_model(save_model(model, tmp_path / "model.bin"))

    assert restored == model.compacted()
    assert restored.pred_labels == ("p",)
    lines = save_model(model, tmp_path / "model.txt").read_text(encoding="utf-8").splitlines()
    # no correction constant for perceptron models
    assert lines[:3] == ["Perceptron", "2", "A"]


def test_qn_round_trip(tmp_path: Path) -> None:
    model = Model([Context([0, 1, 2], [0.1, 0.2, 0.3])], ["p"], ["A", "B", "C"], ModelType.QN)
    assert load_model(save_model(model, tmp_path / "qn.bin")) == model


@pytest.mark.parametrize("label", ["a" * 70000, "é" * 40000])
def test_long_strings_are_chunked(tmp_path: Path, label: str) -> None:
    model = Model([Context([0], [1.0])], [label], ["A"], ModelType.GIS)

    text_path = save_model(model, tmp_path / "model.txt")
    assert "CHUNKED-MODEL-PARAMS:2" in text_path.read_text(encoding="utf-8")
    assert load_model(text_path) == model

    binary_path = save_model(model, tmp_path / "model.bin")
    assert load_model(binary_path) == model


def test_modified_utf8() -> None:
    assert encode_modified_utf8("\x00") == b"\xc0\x80"
    assert len(encode_modified_utf8("\U0001F600")) == 6
    for text in ["plain", "\x00nul", "été", "\U0001F600"]:
        assert decode_modified_utf8(encode_modified_utf8(text)) == text

    with pytest.raises(ModelFormatError):
        decode_modified_utf8(b"\xc3")


def test_plain_text_special_doubles() -> None:
    buffer = io.StringIO()
    writer = PlainTextDataWriter(buffer)
    writer.write_double(float("nan"))
    writer.write_double(float("inf"))
    writer.write_double(float("-inf"))

    assert buffer.getvalue() == "NaN\nInfinity\n-Infinity\n"
    reader = PlainTextDataReader(io.StringIO(buffer.getvalue()))
    assert reader.read_double() != reader.read_double()  # NaN, then inf
    assert reader.read_double() == float("-inf")


def test_truncated_binary_model() -> None:
    data = _binary_bytes(_gis_model())
    with pytest.raises(ModelFormatError):
        ModelReader(BinaryDataReader(io.BytesIO(data[:-4]))).read_model()


def test_truncated_text_model() -> None:
    text = "GIS\n1\n1.0\n2\nA\n"
    with pytest.raises(ModelFormatError):
        ModelReader(PlainTextDataReader(io.StringIO(text))).read_model()


def test_pattern_count_mismatch() -> None:
    text = "GIS\n1\n1.0\n1\nA\n1\n2 0\n1\np\n0.5\n"
    with pytest.raises(ModelFormatError):
        ModelReader(PlainTextDataReader(io.StringIO(text))).read_model()


def test_bad_pattern_and_negative_count() -> None:
    with pytest.raises(ModelFormatError):
        ModelReader(PlainTextDataReader(io.StringIO("GIS\n1\n1.0\n1\nA\n1\n1 7\n"))).read_model()
    with pytest.raises(ModelFormatError):
        ModelReader(PlainTextDataReader(io.StringIO("GIS\n1\n1.0\n-1\n"))).read_model()


def test_unknown_tag_is_read_as_gis(caplog: pytest.LogCaptureFixture) -> None:
    text = "MaxEnt2\n1\n1.0\n1\nA\n1\n1 0\n1\np\n0.5\n"
    with caplog.at_level(logging.ERROR):
        model = ModelReader(PlainTextDataReader(io.StringIO(text))).read_model()

    assert model.model_type is ModelType.GIS
    assert model.context_for("p").parameters.tolist() == [0.5]
    assert "MaxEnt2" in caplog.text


def test_expected_type_mismatch_warns(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = save_model(_gis_model(), tmp_path / "model.txt")
    with caplog.at_level(logging.WARNING):
        load_model(path, expected_type=ModelType.PERCEPTRON)
    assert "Expected a Perceptron model" in caplog.text


def test_binary_file_read_as_text(tmp_path: Path) -> None:
    path = save_model(_gis_model(), tmp_path / "model.bin")
    with pytest.raises(ModelFormatError):
        load_model(path, binary=False)
