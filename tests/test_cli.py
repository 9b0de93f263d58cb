from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from tagml.interfaces.cli import app


EVENTS = "A a c\nB b c\n" * 3


def _write_events(tmp_path: Path) -> Path:
    events_path = tmp_path / "events.txt"
    events_path.write_text(EVENTS, encoding="utf-8")
    return events_path


def test_train_info_eval(tmp_path: Path) -> None:
    events_path = _write_events(tmp_path)
    model_path = tmp_path / "model.bin"

    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "train",
            str(events_path),
            str(model_path),
            "--algorithm",
            "PERCEPTRON",
            "--iterations",
            "10",
            "--cutoff",
            "1",
        ],
    )

    assert result.exit_code == 0
    assert "Trained Perceptron model on 6 events" in result.stdout
    assert model_path.exists()

    result = runner.invoke(app, ["info", str(model_path)])
    assert result.exit_code == 0
    assert "Perceptron" in result.stdout
    assert "Outcomes" in result.stdout

    result = runner.invoke(app, ["eval", str(model_path), str(events_path)])
    assert result.exit_code == 0
    assert "Accuracy: 1.0000 (6/6)" in result.stdout


def test_train_from_yaml_config(tmp_path: Path) -> None:
    events_path = _write_events(tmp_path)
    config_path = tmp_path / "train.yaml"
    config_path.write_text(
        "training:\n"
        "  Algorithm: MAXENT_QN\n"
        "  Iterations: 20\n"
        "  Cutoff: 1\n"
        "logging:\n"
        "  level: WARNING\n",
        encoding="utf-8",
    )
    model_path = tmp_path / "model.txt"

    runner = CliRunner()
    result = runner.invoke(
        app, ["train", str(events_path), str(model_path), "--config", str(config_path)]
    )

    assert result.exit_code == 0
    assert "Trained QN model" in result.stdout
    assert model_path.read_text(encoding="utf-8").startswith("QN\n")


def test_train_real_valued_events(tmp_path: Path) -> None:
    events_path = tmp_path / "events.txt"
    events_path.write_text("A a=2.0 c\nB b=0.5 c\n" * 3, encoding="utf-8")
    model_path = tmp_path / "model.txt"

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["train", str(events_path), str(model_path), "--real-valued", "--cutoff", "1",
         "--iterations", "10"],
    )

    assert result.exit_code == 0
    assert "Trained GIS model" in result.stdout


def test_unknown_algorithm_fails(tmp_path: Path) -> None:
    events_path = _write_events(tmp_path)

    runner = CliRunner()
    result = runner.invoke(
        app, ["train", str(events_path), str(tmp_path / "m.txt"), "--algorithm", "SVM"]
    )

    assert result.exit_code == 1
    assert not (tmp_path / "m.txt").exists()


def test_info_on_corrupt_model(tmp_path: Path) -> None:
    model_path = tmp_path / "broken.txt"
    model_path.write_text("GIS\n1\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(app, ["info", str(model_path)])

    assert result.exit_code == 1
