import json
from pathlib import Path

import pytest

from zoho_bookkeeper.storage.cache import CacheDocument, TransactionCache


@pytest.fixture
def cache(tmp_path: Path) -> TransactionCache:
    return TransactionCache(data_dir=str(tmp_path))


def test_missing_file_starts_empty(cache: TransactionCache) -> None:
    assert cache.get_stats() == (0, 0, 0)
    assert cache.get_known_vendors() == []


def test_mark_processed_is_idempotent(cache: TransactionCache) -> None:
    cache.mark_processed("t1")
    once = cache.snapshot()
    cache.mark_processed("t1")

    assert cache.snapshot() == once
    assert cache.is_processed("t1")
    assert not cache.is_skipped("t1")
    assert cache.get_stats().processed == 1


def test_mark_skipped(cache: TransactionCache) -> None:
    cache.mark_skipped("t2")
    assert cache.is_skipped("t2")
    assert not cache.is_processed("t2")


def test_known_vendors_are_sorted(cache: TransactionCache) -> None:
    for name in ["Staples", "Amazon", "Zoom", "Amazon"]:
        cache.add_vendor(name)
    assert cache.get_known_vendors() == ["Amazon", "Staples", "Zoom"]
    assert cache.get_stats().vendors == 3


def test_save_and_reload(cache: TransactionCache, tmp_path: Path) -> None:
    cache.mark_processed("b")
    cache.mark_processed("a")
    cache.mark_skipped("c")
    cache.add_vendor("Amazon")
    cache.save()

    reloaded = TransactionCache(data_dir=str(tmp_path))
    assert reloaded.snapshot() == cache.snapshot()
    assert reloaded.is_processed("a")
    assert reloaded.is_skipped("c")


def test_saved_file_is_deterministic(cache: TransactionCache, tmp_path: Path) -> None:
    for tx_id in ["t3", "t1", "t2"]:
        cache.mark_processed(tx_id)
    cache.save()

    raw = (tmp_path / "cache.json").read_text(encoding="utf-8")
    data = json.loads(raw)
    assert list(data) == ["known_vendors", "processed_transactions", "skipped_transactions"]
    assert data["processed_transactions"] == ["t1", "t2", "t3"]
    assert not (tmp_path / "cache.json.tmp").exists()


def test_document_roundtrip_ignores_insertion_order() -> None:
    first = CacheDocument(processed_transactions={"x", "y"}, known_vendors={"B", "A"})
    second = CacheDocument(processed_transactions={"y", "x"}, known_vendors={"A", "B"})
    assert first.to_json() == second.to_json()
    assert CacheDocument.model_validate_json(first.to_json()) == second


@pytest.mark.parametrize("content", ["", "   \n", "not json", "[1, 2, 3]", '{"processed_transactions": 5}'])
def test_corrupt_file_falls_back_to_empty(tmp_path: Path, content: str) -> None:
    (tmp_path / "cache.json").write_text(content, encoding="utf-8")

    cache = TransactionCache(data_dir=str(tmp_path))

    assert cache.get_stats() == (0, 0, 0)


def test_undecodable_file_falls_back_to_empty(tmp_path: Path) -> None:
    (tmp_path / "cache.json").write_bytes(b'{"processed_transactions": ["\xff\xfe"]}')

    cache = TransactionCache(data_dir=str(tmp_path))

    assert cache.get_stats() == (0, 0, 0)


def test_clear(cache: TransactionCache) -> None:
    cache.mark_processed("t1")
    cache.add_vendor("Amazon")
    cache.clear()
    assert cache.get_stats() == (0, 0, 0)


def test_both_sets_can_hold_the_same_id(cache: TransactionCache) -> None:
    # Exclusivity between processed and skipped is left to callers.
    cache.mark_processed("t1")
    cache.mark_skipped("t1")
    assert cache.is_processed("t1")
    assert cache.is_skipped("t1")


def test_save_failure_propagates(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    cache = TransactionCache(data_dir=str(blocker))
    cache.mark_processed("t1")

    with pytest.raises(OSError):
        cache.save()


def test_failed_replace_removes_temp_file(tmp_path: Path) -> None:
    (tmp_path / "cache.json").mkdir()
    cache = TransactionCache(data_dir=str(tmp_path))
    cache.mark_processed("t1")

    with pytest.raises(OSError):
        cache.save()

    assert not (tmp_path / "cache.json.tmp").exists()
