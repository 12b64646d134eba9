"""Tests for the kustomize-values command line tool."""

from pathlib import Path

import pytest
import yaml

from . import run_main

APPS_DIR = Path(__file__).parent.parent / "testdata" / "apps"


def test_generate(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the generate command writes files and prints a summary."""
    out = tmp_path / "values"
    code = run_main(
        ["generate", "--path", str(APPS_DIR), "--output-dir", str(out)]
    )
    captured = capsys.readouterr()
    assert code == 1
    assert "kustomize-values error:" in captured.err
    assert "Failed to generate 1 values file(s)" in captured.err
    lines = captured.out.splitlines()
    assert lines[0].split() == ["SERVICE", "ENVIRONMENT", "STATUS", "MESSAGE"]
    assert len(lines) == 9
    assert (out / "api.yaml").exists()


def test_generate_selected_service(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test generating a single service succeeds."""
    out = tmp_path / "values"
    code = run_main(
        [
            "generate",
            "--path",
            str(APPS_DIR),
            "--output-dir",
            str(out),
            "--service",
            "worker",
            "--ingress-class",
            "nginx",
        ]
    )
    assert code == 0
    assert sorted(p.name for p in out.iterdir()) == [
        "worker-staging.yaml",
        "worker.yaml",
    ]
    doc = yaml.safe_load((out / "worker.yaml").read_text())
    assert doc["ingress"]["className"] == "nginx"
    assert "generated" in capsys.readouterr().out


def test_generate_exclude(tmp_path: Path) -> None:
    """Test excluding services adds to the default exclusions."""
    out = tmp_path / "values"
    code = run_main(
        [
            "generate",
            "--path",
            str(APPS_DIR),
            "--output-dir",
            str(out),
            "--exclude",
            "broken,orphan",
            "--exclude",
            "api",
            "--summary",
            "none",
        ]
    )
    assert code == 0
    assert sorted(p.name for p in out.iterdir()) == [
        "worker-staging.yaml",
        "worker.yaml",
    ]


def test_generate_missing_path(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test a missing apps root fails the run."""
    code = run_main(
        ["generate", "--path", str(tmp_path / "missing"), "--output-dir", str(tmp_path)]
    )
    assert code == 1
    assert "Apps directory does not exist" in capsys.readouterr().err


def test_diff(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test diff reports stale files and succeeds once they are generated."""
    out = tmp_path / "values"
    args = ["--path", str(APPS_DIR), "--output-dir", str(out), "-s", "worker"]

    code = run_main(["diff"] + args)
    captured = capsys.readouterr()
    assert code == 1
    assert "+++ b/" in captured.out
    assert "+  name: worker" in captured.out
    assert "2 values file(s) are out of date" in captured.err
    assert not out.exists()

    assert run_main(["generate"] + args) == 0
    capsys.readouterr()

    code = run_main(["diff"] + args)
    captured = capsys.readouterr()
    assert code == 0
    assert captured.out == ""

    (out / "worker.yaml").write_text(
        (out / "worker.yaml").read_text().replace("replicaCount: 1", "replicaCount: 5")
    )
    code = run_main(["diff"] + args)
    captured = capsys.readouterr()
    assert code == 1
    assert "-replicaCount: 5" in captured.out
    assert "+replicaCount: 1" in captured.out
