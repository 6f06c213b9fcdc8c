import json

from config import RECORD_PREFIX
from connection.history import AddressHistoryStore
from connection.models import AddressRecord


def ips(store: AddressHistoryStore) -> list[str]:
    return [record.ip for record in store.records()]


def test_replace_deduplicates_keeping_first(history):
    history.replace(["10.0.0.2", "10.0.0.2", "10.0.0.5"])
    assert ips(history) == ["10.0.0.2", "10.0.0.5"]


def test_replace_drops_blacklisted(history):
    history.replace(["127.0.0.1", "10.0.0.9"])
    assert ips(history) == ["10.0.0.9"]
    history.replace(["0.0.0.0", "", "10.0.0.3"])
    assert ips(history) == ["10.0.0.3"]


def test_replace_strips_display_prefix(history):
    history.replace([f"{RECORD_PREFIX}10.0.0.7|1700000000000", "10.0.0.7", "10.0.0.8"])
    assert history.raw() == ["10.0.0.7|1700000000000", "10.0.0.8"]


def test_records_carry_label_and_detail(history):
    history.replace(["10.0.0.7|1700000000000", "10.0.0.8"])
    first, second = history.records()
    assert first.label == f"{RECORD_PREFIX}10.0.0.7"
    assert first.last_seen_at == 1700000000000
    assert first.detail.startswith("Last connected: ")
    assert second.detail is None
    assert history.labels() == [f"{RECORD_PREFIX}10.0.0.7", f"{RECORD_PREFIX}10.0.0.8"]


def test_out_of_range_timestamp_has_no_detail(history):
    history.replace(["10.0.0.2|99999999999999999999", "10.0.0.3|1700000000000"])
    broken, fine = history.records()
    assert broken.ip == "10.0.0.2"
    assert broken.detail is None
    assert fine.detail.startswith("Last connected: ")


def test_records_purge_blacklisted_written_elsewhere(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"autojs6.devices": ["127.0.0.1|1", "10.0.0.4|2"]}))
    store = AddressHistoryStore(path=path)
    assert ips(store) == ["10.0.0.4"]
    assert json.loads(path.read_text())["autojs6.devices"] == ["10.0.0.4|2"]


def test_other_keys_survive_writes(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"other": [1, 2]}))
    store = AddressHistoryStore(path=path)
    store.replace(["10.0.0.1"])
    assert json.loads(path.read_text())["other"] == [1, 2]


def test_attach_prepends_new_address(history):
    history.replace(["10.0.0.2|1", "10.0.0.3|2"])
    history.record_attach("10.0.0.9")
    records = history.records()
    assert [r.ip for r in records] == ["10.0.0.9", "10.0.0.2", "10.0.0.3"]
    assert records[0].last_seen_at > 2


def test_attach_relocates_existing_address(history):
    history.replace(["10.0.0.2|1", "10.0.0.3|2", "10.0.0.4|3"])
    history.record_attach("10.0.0.3")
    records = history.records()
    assert [r.ip for r in records] == ["10.0.0.3", "10.0.0.2", "10.0.0.4"]
    assert records[0].last_seen_at > 2


def test_attach_collapses_duplicates_written_elsewhere(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"autojs6.devices": ["10.0.0.2|1", "10.0.0.3|2", "10.0.0.3|3"]}))
    store = AddressHistoryStore(path=path)
    store.record_attach("10.0.0.3")
    assert ips(store) == ["10.0.0.3", "10.0.0.2"]


def test_attach_ignores_blacklisted_address(history):
    history.replace(["10.0.0.2"])
    history.record_attach("127.0.0.1")
    assert ips(history) == ["10.0.0.2"]


def test_clear_reports_count(history):
    history.replace(["10.0.0.2", "10.0.0.3"])
    assert history.clear() == 2
    assert history.records() == []


def test_record_parse_round_trip():
    record = AddressRecord.parse(f"{RECORD_PREFIX}192.168.1.5|1700000000000")
    assert record.ip == "192.168.1.5"
    assert record.serialize() == "192.168.1.5|1700000000000"
    assert AddressRecord.parse("192.168.1.5").last_seen_at is None
