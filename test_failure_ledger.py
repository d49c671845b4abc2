"""Tests for the failure ledger backends."""

import json

import pytest
from botocore.exceptions import ClientError
from pynamodb.exceptions import UpdateError

from catalog_crawler.core.exceptions import EntryNotFoundError, LedgerError
from catalog_crawler.core.types import CategoryPayload, EntityLevel, EntryState, LeafPayload, SubItemPayload
from catalog_crawler.state.dynamodb_ledger import DynamoDBLedger
from catalog_crawler.state.local_ledger import LocalLedger
from catalog_crawler.state.models import LedgerEntryModel


def category_payload(name="Ducati"):
    return CategoryPayload(name=name, url=f"https://catalog.test/bikes/{name.lower()}.htm")


def sub_item_payload(name="Monster"):
    return SubItemPayload(
        category="Ducati", name=name, attribute="2019", url=f"https://catalog.test/model/{name.lower()}.htm"
    )


def test_failure_starts_retryable_with_zero_count():
    """A new failure is retryable, carries the error text and has retry count 0."""
    ledger = LocalLedger()

    entry_id = ledger.append_failure(EntityLevel.CATEGORY, category_payload(), ValueError("boom"))

    entry = ledger.get_entry(entry_id)
    assert entry.state == EntryState.FAILED
    assert entry.retry_count == 0
    assert entry.error_message == "boom"
    assert ledger.list_retryable(EntityLevel.CATEGORY) == [(category_payload(), entry_id)]


def test_success_is_never_retryable():
    """Completed entries never appear in retryable queries."""
    ledger = LocalLedger()
    ledger.append_success(EntityLevel.CATEGORY, category_payload())

    assert ledger.list_retryable(EntityLevel.CATEGORY) == []


def test_retryable_query_is_per_level():
    """Failures are only returned for the level they were recorded at."""
    ledger = LocalLedger()
    category_id = ledger.append_failure(EntityLevel.CATEGORY, category_payload(), "down")
    sub_item_id = ledger.append_failure(EntityLevel.SUB_ITEM, sub_item_payload(), "down")

    assert [entry_id for _, entry_id in ledger.list_retryable(EntityLevel.CATEGORY)] == [category_id]
    assert [entry_id for _, entry_id in ledger.list_retryable(EntityLevel.SUB_ITEM)] == [sub_item_id]
    assert ledger.list_retryable(EntityLevel.LEAF) == []


def test_retry_threshold_is_inclusive():
    """An entry at retry count 3 is still retryable; one more failure excludes it for good."""
    ledger = LocalLedger()
    entry_id = ledger.append_failure(EntityLevel.SUB_ITEM, sub_item_payload(), "down")

    for _ in range(3):
        ledger.increment_retry(entry_id)
    assert ledger.get_entry(entry_id).retry_count == 3
    assert len(ledger.list_retryable(EntityLevel.SUB_ITEM)) == 1

    ledger.increment_retry(entry_id)
    assert ledger.get_entry(entry_id).retry_count == 4
    assert ledger.list_retryable(EntityLevel.SUB_ITEM) == []


def test_completed_entry_is_terminal():
    """Once completed, further mutations leave the entry unchanged."""
    ledger = LocalLedger()
    entry_id = ledger.append_failure(EntityLevel.SUB_ITEM, sub_item_payload(), "down")
    ledger.mark_completed(entry_id)
    completed = ledger.get_entry(entry_id)

    ledger.increment_retry(entry_id)
    ledger.mark_completed(entry_id)

    assert ledger.get_entry(entry_id) == completed
    assert completed.state == EntryState.COMPLETED
    assert completed.retry_count == 0


def test_unknown_entry_raises():
    """Mutating an id the ledger never issued is a ledger error."""
    ledger = LocalLedger()

    with pytest.raises(EntryNotFoundError):
        ledger.mark_completed("does-not-exist")
    with pytest.raises(LedgerError):
        ledger.increment_retry("does-not-exist")


def test_payload_must_match_level():
    """A payload cannot be recorded under a different level."""
    ledger = LocalLedger()

    with pytest.raises(ValueError):
        ledger.append_success(EntityLevel.LEAF, sub_item_payload())


def test_summary_counts_retryable_and_exhausted():
    """summary() splits failures into retryable and exhausted per level."""
    ledger = LocalLedger()
    ledger.append_success(EntityLevel.CATEGORY, category_payload("Honda"))
    ledger.append_failure(EntityLevel.CATEGORY, category_payload("Ducati"), "down")
    exhausted_id = ledger.append_failure(EntityLevel.SUB_ITEM, sub_item_payload(), "down")
    for _ in range(4):
        ledger.increment_retry(exhausted_id)

    summary = ledger.summary()

    assert summary["category"] == {"completed": 1, "failed": 1, "retryable": 1, "exhausted": 0}
    assert summary["sub_item"] == {"completed": 0, "failed": 1, "retryable": 0, "exhausted": 1}
    assert summary["leaf"] == {"completed": 0, "failed": 0, "retryable": 0, "exhausted": 0}


def test_ledger_file_survives_restart(tmp_path):
    """Entries written to the JSON file are loaded back by a new ledger instance."""
    state_file = tmp_path / "ledger.json"
    ledger = LocalLedger(state_file)
    leaf = LeafPayload(category="Ducati", sub_item="Monster", attribute="2019", url="https://catalog.test/model/m.htm")
    entry_id = ledger.append_failure(EntityLevel.LEAF, leaf, "store down")
    ledger.increment_retry(entry_id)

    reopened = LocalLedger(state_file)

    assert reopened.list_retryable(EntityLevel.LEAF) == [(leaf, entry_id)]
    assert reopened.get_entry(entry_id).retry_count == 1
    assert (tmp_path / "ledger.backup.json").exists()

    with open(state_file, "r", encoding="utf-8") as f:
        data = json.load(f)
    assert data[entry_id]["payload"]["level"] == "leaf"


def test_corrupt_ledger_file_raises(tmp_path):
    """An unreadable ledger file is reported as a ledger error, not ignored."""
    state_file = tmp_path / "ledger.json"
    state_file.write_text("{not json", encoding="utf-8")

    with pytest.raises(LedgerError):
        LocalLedger(state_file)


def test_max_retry_count_is_configurable():
    """A lower retry ceiling excludes entries sooner."""
    ledger = LocalLedger(max_retry_count=0)
    entry_id = ledger.append_failure(EntityLevel.CATEGORY, category_payload(), "down")
    ledger.increment_retry(entry_id)

    assert ledger.list_retryable(EntityLevel.CATEGORY) == []


def test_ledger_entry_model_round_trip():
    """A ledger entry survives conversion to and from the DynamoDB model."""
    ledger = LocalLedger()
    entry_id = ledger.append_failure(EntityLevel.SUB_ITEM, sub_item_payload(), "down")
    entry = ledger.get_entry(entry_id)

    model = LedgerEntryModel.from_entry(entry)

    assert model.entry_id == entry_id
    assert model.level == "sub_item"
    assert model.state == "failed"
    assert model.to_entry() == entry


def _conditional_failure(code):
    return UpdateError(
        "update failed",
        cause=ClientError({"Error": {"Code": code, "Message": "condition"}}, "UpdateItem"),
    )


def test_dynamodb_conditional_miss_is_a_no_op(monkeypatch):
    """Mutating an entry that is no longer failed leaves DynamoDB untouched without raising."""

    def fake_update(self, actions, condition=None, **kwargs):
        raise _conditional_failure("ConditionalCheckFailedException")

    monkeypatch.setattr(LedgerEntryModel, "update", fake_update)
    ledger = DynamoDBLedger()

    ledger.mark_completed("entry-1")
    ledger.increment_retry("entry-1")


def test_dynamodb_update_failure_raises_ledger_error(monkeypatch):
    """Any other DynamoDB failure is surfaced as a ledger error."""

    def fake_update(self, actions, condition=None, **kwargs):
        raise _conditional_failure("ProvisionedThroughputExceededException")

    monkeypatch.setattr(LedgerEntryModel, "update", fake_update)
    ledger = DynamoDBLedger()

    with pytest.raises(LedgerError):
        ledger.increment_retry("entry-1")
