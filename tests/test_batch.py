"""Tests for the batch CLI."""

import json

from sof_laytime.batch import main


def test_batch_writes_one_result_per_file(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("SOF_OCR_ENDPOINT", raising=False)
    input_dir = tmp_path / "in"
    output_dir = tmp_path / "out"
    input_dir.mkdir()
    (input_dir / "voyage1.json").write_text(json.dumps({
        "events": [{"event": "15/Feb/2025"}, {"event": "14:30 All fast alongside"}],
    }))
    (input_dir / "voyage2.txt").write_text("15/Feb/2025\n09:00 NOR tendered\n")
    (input_dir / "ignored.png").write_bytes(b"\x89PNG")

    code = main([str(input_dir), "--output", str(output_dir), "--confidence-floor", "0.4"])

    assert code == 0
    first = json.loads((output_dir / "voyage1.json").read_text())
    second = json.loads((output_dir / "voyage2.json").read_text())
    assert first["events"][0]["canonical_event"] == "NAV_ALL_FAST"
    assert first["meta"]["confidenceFloor"] == 0.4
    assert second["events"][0]["canonical_event"] == "NAV_NOR_TENDERED"
    assert not (output_dir / "ignored.json").exists()
    assert "voyage1.json: 1 events" in capsys.readouterr().out


def test_batch_reports_invalid_payload(tmp_path, monkeypatch):
    monkeypatch.delenv("SOF_OCR_ENDPOINT", raising=False)
    (tmp_path / "bad.json").write_text(json.dumps({"summary": {}}))

    assert main([str(tmp_path), "--output", str(tmp_path / "out")]) == 1


def test_batch_missing_input_dir(tmp_path):
    assert main([str(tmp_path / "missing")]) == 1
