"""Unit tests for the operation ledger and its record models."""

import threading

import pytest
from pydantic import ValidationError

from src.tagbot.ledger import (
    InvalidTransitionError,
    OperationLedger,
    OperationRecord,
    OperationStatus,
    RecordNotFoundError,
    ToolCallResult,
    is_terminal_status,
    make_comment_preview,
)
from src.tagbot.ledger.models import VALID_TRANSITIONS, is_valid_transition


def _make_record(repo_name: str = "acme/model", num: int = 1) -> OperationRecord:
    return OperationRecord(repo_name=repo_name, discussion_num=num, author_id="u1")


class TestModels:
    def test_new_record_is_processing(self):
        record = _make_record()

        assert record.status == OperationStatus.PROCESSING
        assert record.tag_results == []
        assert record.completed_at is None
        assert len(record.id) == 32

    def test_record_ids_are_unique(self):
        assert len({_make_record().id for _ in range(100)}) == 100

    def test_only_processing_has_transitions(self):
        for status in OperationStatus:
            assert is_terminal_status(status) == (status != OperationStatus.PROCESSING)

    def test_all_terminal_statuses_reachable_from_processing(self):
        assert set(VALID_TRANSITIONS[OperationStatus.PROCESSING]) == {
            OperationStatus.NO_TAGS,
            OperationStatus.ERROR,
            OperationStatus.COMPLETED,
        }
        assert not is_valid_transition(OperationStatus.COMPLETED, OperationStatus.ERROR)

    def test_comment_preview_truncates(self):
        assert make_comment_preview("short") == "short"
        assert make_comment_preview("x" * 150) == "x" * 100 + "..."
        assert make_comment_preview("x" * 100) == "x" * 100

    def test_tool_call_result_requires_one_outcome(self):
        with pytest.raises(ValidationError):
            ToolCallResult(tag="pytorch")
        with pytest.raises(ValidationError):
            ToolCallResult(tag="pytorch", response="ok", error="boom")

    def test_tool_call_result_succeeded(self):
        assert ToolCallResult(tag="jax", response="added").succeeded is True
        assert ToolCallResult(tag="jax", error="boom").succeeded is False

    def test_to_dict_serializes_timestamps(self):
        data = _make_record().to_dict()

        assert isinstance(data["timestamp"], str)
        assert data["status"] == "processing"


class TestLedgerLifecycle:
    def test_append_and_get(self):
        ledger = OperationLedger()
        record = _make_record()

        record_id = ledger.append(record)

        assert record_id == record.id
        assert ledger.get(record_id)["repo_name"] == "acme/model"
        assert len(ledger) == 1
        assert ledger.total_appended == 1

    def test_duplicate_id_rejected(self):
        ledger = OperationLedger()
        record = _make_record()
        ledger.append(record)

        with pytest.raises(ValueError):
            ledger.append(record)

    def test_get_unknown_returns_none(self):
        assert OperationLedger().get("missing") is None

    def test_full_lifecycle(self):
        ledger = OperationLedger()
        record_id = ledger.append(_make_record())

        ledger.set_tags(record_id, ["pytorch", "transformers"])
        ledger.add_result(record_id, ToolCallResult(tag="pytorch", response="added"))
        ledger.add_result(record_id, ToolCallResult(tag="transformers", error="boom"))
        ledger.finish(record_id, OperationStatus.COMPLETED)

        data = ledger.get(record_id)
        assert data["status"] == "completed"
        assert data["extracted_tags"] == ["pytorch", "transformers"]
        assert [r["tag"] for r in data["tag_results"]] == ["pytorch", "transformers"]
        assert data["completed_at"] is not None

    def test_terminal_status_is_final(self):
        ledger = OperationLedger()
        record_id = ledger.append(_make_record())
        ledger.finish(record_id, OperationStatus.NO_TAGS, "nothing")

        with pytest.raises(InvalidTransitionError):
            ledger.finish(record_id, OperationStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            ledger.add_result(record_id, ToolCallResult(tag="jax", response="late"))

        assert ledger.get(record_id)["message"] == "nothing"

    def test_finish_back_to_processing_rejected(self):
        ledger = OperationLedger()
        record_id = ledger.append(_make_record())

        with pytest.raises(InvalidTransitionError):
            ledger.finish(record_id, OperationStatus.PROCESSING)

    def test_unknown_id_raises(self):
        ledger = OperationLedger()

        with pytest.raises(RecordNotFoundError):
            ledger.set_tags("missing", ["jax"])
        with pytest.raises(RecordNotFoundError):
            ledger.finish("missing", OperationStatus.ERROR)


class TestLedgerReads:
    def test_recent_is_oldest_first(self):
        ledger = OperationLedger()
        ids = [ledger.append(_make_record(num=i)) for i in range(5)]

        assert [r["id"] for r in ledger.recent()] == ids
        assert [r["id"] for r in ledger.recent(2)] == ids[-2:]
        assert ledger.recent(0) == []

    def test_snapshots_are_copies(self):
        ledger = OperationLedger()
        record_id = ledger.append(_make_record())

        snapshot = ledger.recent()[0]
        snapshot["status"] = "completed"
        snapshot["extracted_tags"].append("injected")

        assert ledger.get(record_id)["status"] == "processing"
        assert ledger.get(record_id)["extracted_tags"] == []

    def test_snapshot_not_affected_by_later_updates(self):
        ledger = OperationLedger()
        record_id = ledger.append(_make_record())
        before = ledger.get(record_id)

        ledger.finish(record_id, OperationStatus.ERROR, "failed")

        assert before["status"] == "processing"

    def test_count_by_status(self):
        ledger = OperationLedger()
        first = ledger.append(_make_record())
        ledger.append(_make_record())
        ledger.finish(first, OperationStatus.NO_TAGS)

        counts = ledger.count_by_status()

        assert counts["processing"] == 1
        assert counts["no_tags"] == 1
        assert counts["error"] == 0
        assert counts["completed"] == 0


class TestLedgerBounds:
    def test_invalid_max_records(self):
        with pytest.raises(ValueError):
            OperationLedger(max_records=0)

    def test_oldest_record_evicted(self):
        ledger = OperationLedger(max_records=3)
        ids = [ledger.append(_make_record(num=i)) for i in range(5)]

        assert ledger.size == 3
        assert ledger.total_appended == 5
        assert [r["id"] for r in ledger.recent()] == ids[2:]
        assert ledger.get(ids[0]) is None

    def test_evicted_record_cannot_be_updated(self):
        ledger = OperationLedger(max_records=1)
        first = ledger.append(_make_record())
        ledger.append(_make_record())

        with pytest.raises(RecordNotFoundError):
            ledger.finish(first, OperationStatus.COMPLETED)


class TestLedgerConcurrency:
    def test_concurrent_writers_and_readers(self):
        """Readers never fail or see a partial record while writers append."""
        ledger = OperationLedger()
        writers = 10
        per_writer = 50
        errors = []

        def write():
            try:
                for i in range(per_writer):
                    record_id = ledger.append(_make_record(num=i))
                    ledger.set_tags(record_id, ["pytorch"])
                    ledger.add_result(record_id, ToolCallResult(tag="pytorch", response="ok"))
                    ledger.finish(record_id, OperationStatus.COMPLETED)
            except Exception as e:
                errors.append(e)

        def read():
            try:
                for _ in range(per_writer):
                    for data in ledger.recent():
                        if data["status"] == "completed":
                            assert data["completed_at"] is not None
                            assert len(data["tag_results"]) == 1
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=write) for _ in range(writers)]
        threads += [threading.Thread(target=read) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert ledger.size == writers * per_writer
        assert ledger.count_by_status()["completed"] == writers * per_writer
