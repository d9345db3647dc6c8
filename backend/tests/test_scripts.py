from __future__ import annotations

import json

import pytest

from fdc_browser.scripts import import_foods

from .conftest import APPLE, BANANA


def test_load_records_accepts_search_response(tmp_path):
    path = tmp_path / "search.json"
    path.write_text(json.dumps({"totalHits": 2, "foods": [APPLE, BANANA]}), encoding="utf-8")

    records = list(import_foods.load_records(path))

    assert [record["fdcId"] for record in records] == [1, 2]


def test_load_records_accepts_jsonl(tmp_path):
    path = tmp_path / "foods.jsonl"
    path.write_text(json.dumps(APPLE) + "\n\n" + json.dumps(BANANA) + "\n", encoding="utf-8")

    assert len(list(import_foods.load_records(path))) == 2


def test_load_records_rejects_unknown_format(tmp_path):
    path = tmp_path / "foods.csv"
    path.write_text("fdc_id,description\n", encoding="utf-8")

    with pytest.raises(ValueError):
        list(import_foods.load_records(path))


def test_main_imports_records(tmp_path, capsys):
    path = tmp_path / "foods.json"
    path.write_text(json.dumps([APPLE, {"description": "no id"}]), encoding="utf-8")

    exit_code = import_foods.main([str(path), "--query-term", "fruit"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "Imported 1 foods" in out
    assert "1 failed" in out


def test_main_reports_empty_file(tmp_path):
    path = tmp_path / "foods.json"
    path.write_text("[]", encoding="utf-8")

    assert import_foods.main([str(path)]) == 1
