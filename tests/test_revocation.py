import datetime
import json

import pytest

from pki.errors import FileSystemError, InvalidParameters
from pki.revocation import RevocationEntry, RevocationReason, RevocationRecord


@pytest.fixture
def record_path(tmp_path):
    return tmp_path / "crl" / "revocation_record.json"


@pytest.fixture
def record(record_path):
    record_path.parent.mkdir()
    return RevocationRecord(record_path)


def test_empty_record(record, make_certificate):
    assert len(record) == 0
    assert record.is_revoked(make_certificate()) is None


def test_revoke_persists_entry(record, record_path, make_certificate):
    certificate = make_certificate()
    date = datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc)

    entry = record.revoke(certificate, RevocationReason.AFFILIATION_CHANGED, date)

    data = json.loads(record_path.read_text())
    assert data["version"] == 1
    assert data["entries"] == [entry.to_dict()]
    assert entry.revocation_date == date
    assert entry.serial_number == format(certificate.serial_number, "X")
    assert certificate in record


def test_entries_round_trip_through_disk(record, record_path, make_certificate):
    certificate = make_certificate()
    entry = record.revoke(certificate, RevocationReason.SUPERSEDED)

    reloaded = RevocationRecord(record_path)

    assert reloaded.entries() == [entry]
    assert RevocationEntry.from_dict(entry.to_dict()) == entry


def test_revoke_is_append_only(record, make_certificate):
    certificate = make_certificate()
    first = record.revoke(certificate, RevocationReason.KEY_COMPROMISE)

    second = record.revoke(certificate, RevocationReason.UNSPECIFIED)

    assert second == first
    assert len(record) == 1


def test_changes_from_other_writers_are_seen(record, record_path, make_certificate):
    certificate = make_certificate()
    RevocationRecord(record_path).revoke(certificate, RevocationReason.KEY_COMPROMISE)

    assert record.is_revoked(certificate) is not None


def test_self_issued_certificate_has_no_revoked_issuer(record, make_certificate):
    certificate = make_certificate("root")
    record.revoke(certificate, RevocationReason.CA_COMPROMISE)

    assert record.is_issuer_revoked(certificate) is None
    assert record.is_issuer_revoked(make_certificate("leaf", issuer="root")) is not None


def test_corrupt_record(record_path):
    record_path.parent.mkdir()
    record_path.write_text("[1, 2")

    with pytest.raises(FileSystemError):
        RevocationRecord(record_path)


def test_failed_save_rolls_back(tmp_path, make_certificate):
    record = RevocationRecord(tmp_path / "missing_dir" / "revocation_record.json")

    with pytest.raises(FileSystemError):
        record.revoke(make_certificate(), RevocationReason.KEY_COMPROMISE)

    assert len(record) == 0


@pytest.mark.parametrize("text,expected", [
    ("keyCompromise", RevocationReason.KEY_COMPROMISE),
    ("cacompromise", RevocationReason.CA_COMPROMISE),
    ("Superseded", RevocationReason.SUPERSEDED),
])
def test_parse_reason(text, expected):
    assert RevocationReason.parse(text) == expected


def test_remove_from_crl_is_not_a_reason():
    with pytest.raises(InvalidParameters):
        RevocationReason.parse("removeFromCRL")
