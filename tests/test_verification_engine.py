import datetime

import pytest

from pki.errors import CertificateRevoked, CertificateTimeInvalid, CertificateUntrusted, FileSystemError
from pki.models import TrustStatus
from pki.revocation import RevocationReason, RevocationRecord
from verification.verification_engine import CertificateVerificationEngine, FailureReason

from conftest import utc_now


@pytest.fixture
def record(tmp_path):
    return RevocationRecord(tmp_path / "revocation_record.json")


@pytest.fixture
def engine(trust_store, record):
    return CertificateVerificationEngine(trust_store, revocation_sources=[record])


@pytest.fixture
def trusted(trust_store, make_certificate):
    def factory(**kwargs):
        certificate = make_certificate(**kwargs)
        trust_store.trust(certificate)
        return certificate
    return factory


class TestOrderedChecks:

    def test_trusted_valid_certificate_passes(self, engine, trusted):
        certificate = trusted()

        result = engine.verify(certificate)

        assert result.ok
        assert result.thumbprint == certificate.thumbprint
        result.raise_for_failure()

    def test_missing_certificate(self, engine):
        assert engine.verify(None).reason == FailureReason.MISSING_CERTIFICATE
        assert engine.verify(b"").reason == FailureReason.MISSING_CERTIFICATE

    def test_invalid_data(self, engine):
        assert engine.verify(b"\x30\x03garbage").reason == FailureReason.INVALID_DATA

    def test_accepts_encoded_bytes(self, engine, trusted):
        certificate = trusted()

        assert engine.verify(certificate.der).ok
        assert engine.verify(certificate.to_pem()).ok

    def test_not_yet_active(self, engine, trusted):
        now = utc_now()
        certificate = trusted(not_before=now + datetime.timedelta(days=10),
                              not_after=now + datetime.timedelta(days=400))

        result = engine.verify(certificate)

        assert result.reason == FailureReason.TIME_INVALID
        assert "non ancora attivo" in result.message

    @pytest.mark.parametrize("status", [TrustStatus.TRUSTED, TrustStatus.REJECTED, TrustStatus.UNKNOWN])
    def test_expired_regardless_of_trust(self, engine, trust_store, make_certificate, status):
        now = utc_now()
        certificate = make_certificate(not_before=now - datetime.timedelta(days=400),
                                       not_after=now - datetime.timedelta(days=1))
        if status == TrustStatus.TRUSTED:
            trust_store.trust(certificate)
        elif status == TrustStatus.REJECTED:
            trust_store.reject(certificate)

        result = engine.verify(certificate)

        assert result.reason == FailureReason.TIME_INVALID
        assert "scaduto" in result.message

    def test_expiry_boundary_uses_clock(self, trust_store, trusted):
        certificate = trusted()
        engine = CertificateVerificationEngine(trust_store, clock=lambda: certificate.not_after)

        assert engine.verify(certificate).reason == FailureReason.TIME_INVALID

    def test_unknown_is_untrusted_and_not_filed(self, engine, trust_store, make_certificate):
        certificate = make_certificate()

        assert engine.verify(certificate).reason == FailureReason.UNTRUSTED
        assert trust_store.status(certificate) == TrustStatus.UNKNOWN

    def test_rejected_is_untrusted(self, engine, trust_store, make_certificate):
        certificate = make_certificate()
        trust_store.reject(certificate)

        assert engine.verify(certificate).reason == FailureReason.UNTRUSTED

    def test_check_raises(self, engine, make_certificate):
        with pytest.raises(CertificateUntrusted):
            engine.check(make_certificate())

    def test_time_is_checked_before_trust(self, engine, make_certificate):
        now = utc_now()
        certificate = make_certificate(not_after=now - datetime.timedelta(seconds=1),
                                       not_before=now - datetime.timedelta(days=2))
        with pytest.raises(CertificateTimeInvalid):
            engine.check(certificate)


class TestRevocation:

    def test_revocation_supersedes_trust(self, engine, trust_store, record, trusted):
        certificate = trusted()
        assert engine.verify(certificate).ok

        record.revoke(certificate, RevocationReason.KEY_COMPROMISE)

        assert trust_store.status(certificate) == TrustStatus.TRUSTED
        result = engine.verify(certificate)
        assert result.reason == FailureReason.REVOKED
        with pytest.raises(CertificateRevoked):
            result.raise_for_failure()

    def test_revoked_by_issuer_and_serial(self, engine, record, make_certificate, trust_store):
        original = make_certificate("peer", issuer="Issuing CA", serial_number=4242)
        reissued = make_certificate("peer", issuer="Issuing CA", serial_number=4242,
                                    application_uri="urn:test:other")
        trust_store.trust(reissued)
        record.revoke(original, RevocationReason.SUPERSEDED)

        assert engine.verify(reissued).reason == FailureReason.REVOKED

    def test_issuer_revoked(self, engine, record, make_certificate, trust_store):
        issuer = make_certificate("Issuing CA")
        leaf = make_certificate("leaf", issuer="Issuing CA")
        trust_store.trust(leaf)
        record.revoke(issuer, RevocationReason.CA_COMPROMISE)

        result = engine.verify(leaf)

        assert result.reason == FailureReason.ISSUER_REVOKED
        assert isinstance(result.error, CertificateRevoked)

    def test_without_sources_nothing_is_revoked(self, trust_store, trusted):
        engine = CertificateVerificationEngine(trust_store)
        assert engine.verify(trusted()).ok

    def test_operational_errors_propagate(self, engine, record, trusted):
        certificate = trusted()
        record.path.write_text("{not json")

        with pytest.raises(FileSystemError):
            engine.verify(certificate)


class TestApplicationUri:

    def test_matching_uri(self, engine, trusted):
        certificate = trusted(application_uri="urn:host:app")
        assert engine.verify(certificate, application_uri="urn:host:app").ok

    def test_mismatching_uri(self, engine, trusted):
        certificate = trusted(application_uri="urn:host:app")

        result = engine.verify(certificate, application_uri="urn:host:other")

        assert result.reason == FailureReason.URI_INVALID

    def test_certificate_without_uri(self, engine, trusted):
        certificate = trusted(application_uri=None)

        assert engine.verify(certificate).ok
        assert engine.verify(certificate, application_uri="urn:host:app").reason == FailureReason.URI_INVALID


def test_result_serialization(engine, make_certificate):
    result = engine.verify(make_certificate())

    data = result.to_dict()

    assert data["ok"] is False
    assert data["reason"] == "BadCertificateUntrusted"
