from __future__ import annotations

import json
from pathlib import Path

from vault_allocator.cli import EXIT_INVALID, EXIT_REJECTED, main

FIXTURE = {
    "exchange_rates": [str(1200 * 10**26), str(16400 * 10**26), str(270 * 10**26)],
    "allocation": [600, 300, 100],
    "strategy_ratios": [[1000, 71, 4300], [1000, 74, 4500], [1000, 76, 4600]],
}


def _write(tmp_path: Path, payload: dict) -> str:
    path = tmp_path / "input.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_distribute_prints_amounts_as_strings(tmp_path, capsys):
    payload = dict(FIXTURE, deposit=["2799819944784511", "202623112855200", "12285914871975105"])

    assert main(["distribute", _write(tmp_path, payload)]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["distribution"][0] == ["1701934532251659", "120837351789867", "7318318488682135"]
    assert output["distribution"][2] == ["271120268951306", "20605140440299", "1247153237176011"]


def test_deposit_ratio_command(tmp_path, capsys):
    assert main(["deposit-ratio", _write(tmp_path, FIXTURE)]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["deposit_ratio"] == ["2799819944784511", "202623112855200", "12285914871975105"]
    assert len(output["flush_factors"]) == 3


def test_check_deposit_reports_rejection(tmp_path, capsys):
    payload = {
        "exchange_rates": [1, 1],
        "allocation": [10_000],
        "strategy_ratios": [[1, 1]],
        "deposit": [100_000, 100_251],
        "tolerance_bps": 25,
    }

    assert main(["check-deposit", _write(tmp_path, payload)]) == EXIT_REJECTED

    output = json.loads(capsys.readouterr().out)
    assert output["accepted"] is False
    assert output["assets"] == [{"asset_index": 1, "deviation_bps": 25, "within_tolerance": False}]


def test_reallocate_merges_vaults(tmp_path, capsys):
    payload = {
        "vaults": [
            {"vault_id": "A", "strategies": ["a", "b", "c"], "old_exposure": [60, 25, 15], "new_allocation": [4000, 3000, 3000]},
            {"vault_id": "B", "strategies": ["c", "d"], "old_exposure": [10, 30], "new_allocation": [10000, 0]},
        ]
    }
    output_path = tmp_path / "out.json"

    assert main(["reallocate", _write(tmp_path, payload), "--output", str(output_path)]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output == json.loads(output_path.read_text(encoding="utf-8"))
    assert output["strategy_ids"] == ["a", "b", "c", "d"]
    assert output["plans"][0]["withdrawals"] == ["20", "0", "0"]
    assert output["plans"][0]["deposits"] == ["0", "5", "15", "20"]
    assert output["plans"][1]["transfers"] == [{"source": "d", "target": "c", "amount": "30"}]
    assert output["matrix"][3][2] == ["30"]


def test_invalid_input_exits_with_error_payload(tmp_path, capsys):
    payload = {"vaults": [{"vault_id": "A", "strategies": ["a"], "old_exposure": [1], "new_allocation": [9000]}]}

    assert main(["reallocate", _write(tmp_path, payload)]) == EXIT_INVALID

    output = json.loads(capsys.readouterr().out)
    assert output["error"] == "ConfigurationError"


def test_schema_errors_are_invalid_input(tmp_path, capsys):
    assert main(["distribute", _write(tmp_path, {"allocation": [1]})]) == EXIT_INVALID
    assert json.loads(capsys.readouterr().out)["error"] == "InvalidInput"


def test_missing_input_file_is_invalid_input(tmp_path, capsys):
    missing = tmp_path / "absent.json"

    assert main(["distribute", str(missing)]) == EXIT_INVALID

    output = json.loads(capsys.readouterr().out)
    assert output["error"] == "InvalidInput"
    assert "absent.json" in output["detail"]
