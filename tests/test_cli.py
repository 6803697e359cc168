import json

import pytest

import sankey

CSV = "Cat,Sub,Amt,Region\nA,B,10,North\nB,A,5,South\nA,C,3,North\nA,A,2,North\n"


@pytest.fixture
def csv_path(tmp_path):
    path = tmp_path / "flows.csv"
    path.write_text(CSV)
    return path


def test_prints_payload(csv_path, capsys):
    sankey.main(["--input", str(csv_path), "--source", "Cat", "--target", "Sub", "--value", "Amt"])
    payload = json.loads(capsys.readouterr().out)
    assert [node["name"] for node in payload["nodes"]] == ["A", "B", "C"]
    assert len(payload["links"]) == 2


def test_filter_arguments(csv_path, capsys):
    sankey.main([
        "--input", str(csv_path),
        "--source", "Cat", "--target", "Sub", "--value", "Amt",
        "--filter-column", "Region", "--filter-value", "South",
    ])
    payload = json.loads(capsys.readouterr().out)
    assert payload["links"] == [{"source": 0, "target": 1, "weight": 5.0}]


def test_list_values(csv_path, capsys):
    sankey.main(["--input", str(csv_path), "--list-values", "Region"])
    assert json.loads(capsys.readouterr().out) == ["North", "South"]


def test_list_values_unknown_column(csv_path):
    with pytest.raises(SystemExit):
        sankey.main(["--input", str(csv_path), "--list-values", "Nope"])


def test_writes_json_and_audit(csv_path, tmp_path, capsys):
    out = tmp_path / "out" / "sankey.json"
    audit = tmp_path / "drops.sqlite"
    sankey.main([
        "--input", str(csv_path),
        "--source", "Cat", "--target", "Sub", "--value", "Amt",
        "--out-json", str(out), "--audit-db", str(audit), "--highcharts",
    ])
    content = json.loads(out.read_text())
    assert content["series"][0]["type"] == "sankey"
    printed = capsys.readouterr().out
    assert "self_loop: 1" in printed
    assert "cycle: 1" in printed
    assert audit.exists()


def test_missing_input_exits(tmp_path):
    with pytest.raises(SystemExit, match="not found"):
        sankey.main(["--input", str(tmp_path / "missing.csv")])


def test_incomplete_config_prints_empty_graph(csv_path, capsys):
    sankey.main(["--input", str(csv_path), "--source", "Cat"])
    assert json.loads(capsys.readouterr().out) == {"nodes": [], "links": []}


def test_late_non_numeric_value_is_dropped(tmp_path, capsys):
    path = tmp_path / "late.csv"
    path.write_text("Cat,Sub,Amt\n" + "A,B,1\n" * 10_001 + "A,C,n/a\n")
    sankey.main(["--input", str(path), "--source", "Cat", "--target", "Sub", "--value", "Amt"])
    payload = json.loads(capsys.readouterr().out)
    assert [node["name"] for node in payload["nodes"]] == ["A", "B"]
