import json

import pytest

from bookgrade.cache import (
    ReportCache,
    ScoreHistory,
    StateStore,
    cache_key,
    hash_tree,
    write_json_atomic,
)
from bookgrade.lifecycle import Chapter, ChapterStatus
from bookgrade.scoring import score


def test_hash_tree_changes_with_content(tmp_path):
    src = tmp_path / "ch01"
    (src / "src").mkdir(parents=True)
    (src / "src" / "main.rs").write_text("fn main() {}\n")
    before = hash_tree(src)

    assert hash_tree(src) == before
    (src / "src" / "main.rs").write_text("fn main() { println!(); }\n")
    assert hash_tree(src) != before


def test_hash_tree_ignores_build_output(tmp_path):
    src = tmp_path / "ch01"
    src.mkdir()
    (src / "lib.rs").write_text("// lib\n")
    before = hash_tree(src)

    (src / "target").mkdir()
    (src / "target" / "out.bin").write_bytes(b"\x00\x01")
    assert hash_tree(src) == before


def test_cache_key_depends_on_every_input():
    base = cache_key("ch01", "src", "evidence", "v1")

    assert cache_key("ch01", "src", "evidence", "v1") == base
    assert cache_key("ch02", "src", "evidence", "v1") != base
    assert cache_key("ch01", "src2", "evidence", "v1") != base
    assert cache_key("ch01", "src", "evidence2", "v1") != base
    assert cache_key("ch01", "src", "evidence", "v2") != base


def test_report_cache_round_trip(tmp_path, example_evidence, catalog):
    cache = ReportCache(tmp_path / "cache")
    report = score(example_evidence, catalog)
    key = cache_key("ch05", "digest", example_evidence.digest, catalog.version)

    assert cache.get(key) is None
    cache.put(key, report)
    assert cache.get(key) == report


def test_report_cache_ignores_corrupt_entry(tmp_path, caplog):
    cache = ReportCache(tmp_path)
    (tmp_path / "deadbeef.json").write_text("{not json")
    assert cache.get("deadbeef") is None
    assert "unreadable cache entry" in caplog.text


def test_history_appends_and_filters(tmp_path, example_evidence, catalog):
    history = ScoreHistory(tmp_path / "history.jsonl")
    report = score(example_evidence, catalog)

    history.append(report, timestamp="2025-01-01T00:00:00+00:00")
    history.append(report, timestamp="2025-01-02T00:00:00+00:00")

    entries = history.entries("ch05")
    assert len(entries) == 2
    assert entries[0].grade == "A"
    assert history.trend("ch05") == [92.0, 92.0]
    assert history.entries("ch99") == []


def test_state_store_persists_status_and_report(tmp_path, example_evidence, catalog):
    path = tmp_path / "state.json"
    report = score(example_evidence, catalog)
    chapter = Chapter(id="ch05", number=5, title="pmat", status=ChapterStatus.COMPLETE)

    store = StateStore(path)
    store.record(chapter, report)
    store.save()

    reloaded = StateStore(path)
    assert reloaded.status("ch05") is ChapterStatus.COMPLETE
    assert reloaded.latest_report("ch05") == report
    assert reloaded.status("ch01") is None

    planned = Chapter(id="ch05", number=5, title="pmat")
    assert reloaded.resolve(planned).status is ChapterStatus.COMPLETE


def test_state_store_record_without_report_keeps_previous(tmp_path, example_evidence, catalog):
    store = StateStore(tmp_path / "state.json")
    report = score(example_evidence, catalog)
    chapter = Chapter(id="ch05", number=5, title="pmat", status=ChapterStatus.COMPLETE)

    store.record(chapter, report)
    store.record(chapter.with_status(ChapterStatus.PUBLISHED))

    assert store.status("ch05") is ChapterStatus.PUBLISHED
    assert store.latest_report("ch05") == report


def test_state_store_rejects_malformed_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps(["not", "a", "mapping"]))
    with pytest.raises(ValueError, match="Malformed state file"):
        StateStore(path)


def test_write_json_atomic_leaves_no_temp_files(tmp_path):
    target = tmp_path / "nested" / "data.json"
    write_json_atomic(target, {"b": 1, "a": 2})

    assert json.loads(target.read_text()) == {"a": 2, "b": 1}
    assert [p.name for p in target.parent.iterdir()] == ["data.json"]
