"""Tests for the local ledger client."""

import json
import time

import pytest

from medledger.errors import (
    ConfigError,
    DuplicateKeyError,
    LedgerRejectedError,
    LedgerTimeoutError,
    ValidationError,
)
from medledger.ledger.client import ClientContext
from medledger.models.transaction import TransactionPayload


def _ditem(fields):
    return TransactionPayload(target_function="insertDitem", arguments=fields)


def test_invoke_commits_and_stamps_results(ledger_client, world_state, ditem_fields):
    results = ledger_client.invoke(ClientContext("c1"), "medrecords", "v0", [_ditem(ditem_fields)], 4000)

    assert len(results) == 1
    result = results[0]
    assert result.status == "success"
    assert result.tx_id.startswith("c1-")
    assert result.time_final >= result.time_create
    assert result.duration_ms == result.time_final - result.time_create
    assert json.loads(result.result)["itemid"] == "220000"
    assert world_state.get("220000")


def test_query_returns_matches_without_committing(ledger_client, world_state, patient_fields):
    ledger_client.invoke(
        ClientContext(), "medrecords", "v0",
        [TransactionPayload(target_function="insertPatient", arguments=patient_fields)], 4000,
    )
    keys_before = world_state.count_keys()

    results = ledger_client.query(
        ClientContext(), "medrecords", "v0",
        TransactionPayload(target_function="queryPatientById", arguments=["249"]), 1000,
    )

    assert [doc["subjectId"] for doc in json.loads(results[0].result)] == ["249"]
    assert world_state.count_keys() == keys_before


def test_contract_error_is_rejected_with_cause(ledger_client, world_state, ditem_fields):
    fields = list(ditem_fields)
    fields[1] = ""
    with pytest.raises(LedgerRejectedError) as exc:
        ledger_client.invoke(ClientContext(), "medrecords", "v0", [_ditem(fields)], 4000)
    assert isinstance(exc.value.__cause__, ValidationError)
    assert world_state.count_keys() == 0


def test_duplicate_key_surfaces_through_rejection(ledger_client):
    from medledger.schemas import RECORD_SCHEMAS

    cv = [f"v{i}" for i in range(RECORD_SCHEMAS["inputEventCv"].arity)]
    payload = TransactionPayload(target_function="insertInputeventCv", arguments=cv)
    ledger_client.invoke(ClientContext(), "medrecords", "v0", [payload], 4000)
    with pytest.raises(LedgerRejectedError) as exc:
        ledger_client.invoke(ClientContext(), "medrecords", "v0", [payload], 4000)
    assert isinstance(exc.value.__cause__, DuplicateKeyError)


def test_timeout_rolls_back(ledger_client, world_state, store, monkeypatch, ditem_fields):
    original = store.insert

    def slow_insert(stub, record_type, values):
        payload = original(stub, record_type, values)
        time.sleep(0.05)
        return payload

    monkeypatch.setattr(store, "insert", slow_insert)
    with pytest.raises(LedgerTimeoutError):
        ledger_client.invoke(ClientContext(), "medrecords", "v0", [_ditem(ditem_fields)], 10)
    assert world_state.count_keys() == 0


def test_unknown_contract_is_config_error(ledger_client, ditem_fields):
    with pytest.raises(ConfigError):
        ledger_client.invoke(ClientContext(), "medrecords", "v9", [_ditem(ditem_fields)], 4000)


def test_non_positive_timeout_is_config_error(ledger_client, ditem_fields):
    with pytest.raises(ConfigError):
        ledger_client.invoke(ClientContext(), "medrecords", "v0", [_ditem(ditem_fields)], 0)
