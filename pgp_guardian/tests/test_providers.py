import logging

import httpx
import pytest
from pgpy.constants import HashAlgorithm, PubKeyAlgorithm, SignatureType, SymmetricKeyAlgorithm
from pgpy.packet.packets import PubSubKeyV4

from pgp_guardian.config import CustodianConfig
from pgp_guardian.models import CipherSuite, KeyHandle
from pgp_guardian.openpgp.signature import complete, new_signature, timestamp, verify_signature
from pgp_guardian.providers import BundleFileBackend, LocalBackend, RemoteBackend
from pgp_guardian.services.certificate import CertificateAssembler
from pgp_guardian.services.key_manager import BackendSpec, KeyManager
from pgp_guardian.utils.errors import (
    CryptographicFailure,
    KeyNotFound,
    ProviderRejected,
    ProviderUnavailable,
)

CREATED = 1_700_000_000
SUITES = [CipherSuite.CV25519, CipherSuite.NISTP256, CipherSuite.NISTP384, CipherSuite.NISTP521, CipherSuite.RSA2K]
SIGNING = (PubKeyAlgorithm.EdDSA, PubKeyAlgorithm.ECDSA, PubKeyAlgorithm.RSAEncryptOrSign)
ENCRYPTING = (PubKeyAlgorithm.ECDH, PubKeyAlgorithm.RSAEncryptOrSign)


def generate(backend, name, suite=CipherSuite.CV25519):
    provider, _ = CertificateAssembler(clock=lambda: CREATED).generate(
        backend, name, [f"{name} <{name}@example.org>"], suite
    )
    return provider


def _check_capabilities(provider, wrap_session_key):
    primary = provider.primary_key()
    subkey = provider.subkey()
    assert primary.pkalg in SIGNING
    assert subkey.pkalg in ENCRYPTING
    assert not isinstance(primary, PubSubKeyV4) and isinstance(subkey, PubSubKeyV4)
    assert timestamp(primary.created) == timestamp(subkey.created) == CREATED

    sig = new_signature(SignatureType.BinaryDocument, primary, HashAlgorithm.SHA512, CREATED)
    complete(sig, primary, b"to be signed", provider.sign)
    assert verify_signature(primary, b"to be signed", sig)
    assert not verify_signature(primary, b"other", sig)

    pkesk, key = wrap_session_key(subkey)
    algorithm, recovered = provider.decrypt(pkesk)
    assert algorithm is SymmetricKeyAlgorithm.AES256
    assert bytes(recovered) == bytes(key)


@pytest.mark.parametrize("suite", SUITES)
def test_local_provider_capabilities(local_backend, wrap_session_key, suite):
    provider = local_backend.create("alice", suite, CREATED)
    assert provider.handle == KeyHandle("local", "alice")
    _check_capabilities(provider, wrap_session_key)


@pytest.mark.parametrize("suite", SUITES)
def test_remote_provider_capabilities(remote_backend, custodian, wrap_session_key, suite):
    provider = remote_backend.create("team/alice", suite, CREATED)
    assert provider.handle == KeyHandle("remote", "team/alice")
    assert set(custodian.keys) == {"team/alice", "team/alice/encryption"}
    assert custodian.keys["team/alice"]["metadata"] == {"created": CREATED, "suite": suite.value}
    _check_capabilities(provider, wrap_session_key)


def test_local_and_remote_expose_same_key_packets_after_reopen(local_backend, remote_backend):
    local = generate(local_backend, "bob")
    remote = remote_backend.create("bob", CipherSuite.NISTP256, CREATED)
    assert local_backend.open("bob").fingerprint == local.fingerprint
    reopened = remote_backend.open("bob")
    assert reopened.fingerprint == remote.fingerprint
    assert bytes(reopened.subkey()) == bytes(remote.subkey())
    assert reopened.suite is CipherSuite.NISTP256


def test_local_create_writes_nothing_until_certificate_is_stored(store, local_backend):
    local_backend.create("carol", CipherSuite.CV25519, CREATED)
    assert not store.exists("carol")


def test_local_create_refuses_existing_name(local_backend):
    generate(local_backend, "carol")
    with pytest.raises(ProviderRejected):
        local_backend.create("carol", CipherSuite.CV25519, CREATED)


def test_local_open_missing_key(local_backend):
    with pytest.raises(KeyNotFound):
        local_backend.open("nobody")


def test_passphrase_sealed_local_key(store):
    generate(LocalBackend(store, passphrase=b"correct horse"), "dave")
    assert store.load("dave").sealed

    with pytest.raises(ProviderRejected):
        LocalBackend(store).open("dave").primary_key()
    with pytest.raises(CryptographicFailure):
        LocalBackend(store, passphrase=b"wrong").open("dave").primary_key()
    LocalBackend(store, passphrase=b"correct horse").open("dave").primary_key()


def test_bundle_file_backend(tmp_path):
    path = tmp_path / "erin.json"
    backend = BundleFileBackend(path)
    created = generate(backend, "erin")
    assert path.exists()
    assert (path.stat().st_mode & 0o777) == 0o600
    assert backend.open().fingerprint == created.fingerprint
    with pytest.raises(ProviderRejected):
        backend.create("erin", CipherSuite.CV25519, CREATED)


def test_corrupted_bundle_is_cryptographic_failure(store, local_backend):
    generate(local_backend, "frank")
    path = store.paths.bundle("frank")
    path.write_text(path.read_text().replace("PRIVATE KEY-----\\n", "PRIVATE KEY-----\\nAAAA", 1))
    with pytest.raises(CryptographicFailure):
        local_backend.open("frank").primary_key()


@pytest.mark.parametrize("status, error", [
    (500, ProviderUnavailable),
    (503, ProviderUnavailable),
    (429, ProviderUnavailable),
    (400, ProviderRejected),
    (403, ProviderRejected),
    (409, ProviderRejected),
])
def test_remote_status_classification(remote_backend, custodian, status, error):
    provider = remote_backend.create("gina", CipherSuite.CV25519, CREATED)
    custodian.fail_status = status
    with pytest.raises(error) as excinfo:
        provider.sign(b"\x00" * 64, HashAlgorithm.SHA512)
    assert excinfo.value.identity == "gina"
    assert excinfo.value.retryable is (error is ProviderUnavailable)


def test_remote_missing_key_is_key_not_found(remote_backend):
    with pytest.raises(KeyNotFound):
        remote_backend.open("nobody")


def test_remote_bad_credentials_are_rejected(transport):
    from pgp_guardian.custodian.client import CustodianClient

    with CustodianClient("https://custodian.test/api", "wrong-key", transport=transport) as client:
        with pytest.raises(ProviderRejected):
            RemoteBackend(client).create("hank", CipherSuite.CV25519, CREATED)


@pytest.mark.parametrize("exc", [httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout])
def test_remote_transport_failures_are_unavailable(remote_backend, custodian, exc):
    provider = remote_backend.create("ivan", CipherSuite.NISTP256, CREATED)
    custodian.fail_exception = exc
    with pytest.raises(ProviderUnavailable):
        provider.sign(b"\x00" * 64, HashAlgorithm.SHA512)


def test_remote_malformed_response_is_cryptographic_failure(remote_backend, custodian):
    provider = remote_backend.create("judy", CipherSuite.CV25519, CREATED)
    custodian.garbage = True
    with pytest.raises(CryptographicFailure):
        provider.sign(b"\x00" * 64, HashAlgorithm.SHA512)


def test_remote_operation_limits_are_enforced_by_custodian(remote_backend, custodian, wrap_session_key):
    provider = remote_backend.create("kim", CipherSuite.RSA2K, CREATED)
    custodian.keys["kim/encryption"]["ops"] = []
    pkesk, _ = wrap_session_key(provider.subkey())
    with pytest.raises(ProviderRejected):
        provider.decrypt(pkesk)


def test_remote_open_checks_key_kind(remote_backend, custodian):
    remote_backend.create("leo", CipherSuite.NISTP256, CREATED)
    custodian.keys["leo"]["metadata"]["suite"] = "cv25519"
    with pytest.raises(CryptographicFailure):
        remote_backend.open("leo")


def test_decrypt_rejects_algorithm_mismatch(local_backend, wrap_session_key):
    rsa = local_backend.create("mia", CipherSuite.RSA2K, CREATED)
    ecc = local_backend.create("ned", CipherSuite.CV25519, CREATED)
    pkesk, _ = wrap_session_key(ecc.subkey())
    assert pkesk.pkalg is PubKeyAlgorithm.ECDH
    with pytest.raises(CryptographicFailure):
        rsa.decrypt(pkesk)


# ----- Atomic generation -----
def test_remote_create_rolls_back_primary_when_subkey_creation_fails(remote_backend, custodian):
    remote_backend.create("olga/encryption", CipherSuite.CV25519, CREATED)
    existing = set(custodian.keys)
    with pytest.raises(ProviderRejected):
        remote_backend.create("olga", CipherSuite.CV25519, CREATED)
    assert set(custodian.keys) == existing
    assert ("DELETE", "keys/olga") in custodian.calls


def test_remote_create_rolls_back_both_keys_when_metadata_fails(remote_backend, custodian):
    custodian.fail_routes[("PUT", "keys/pia/metadata")] = 503
    with pytest.raises(ProviderUnavailable):
        remote_backend.create("pia", CipherSuite.NISTP256, CREATED)
    assert custodian.keys == {}
    deletes = [path for method, path in custodian.calls if method == "DELETE"]
    assert deletes == ["keys/pia/encryption", "keys/pia"]


def test_remote_rollback_failure_keeps_original_error(remote_backend, custodian, caplog):
    custodian.fail_routes[("PUT", "keys/quinn/metadata")] = 503
    custodian.fail_routes[("DELETE", "keys/quinn")] = 500
    with caplog.at_level(logging.WARNING, logger="pgp_guardian.providers.remote"):
        with pytest.raises(ProviderUnavailable):
            remote_backend.create("quinn", CipherSuite.CV25519, CREATED)
    assert set(custodian.keys) == {"quinn"}
    assert "could not delete custodian key quinn" in caplog.text


def _broken_certify(self, provider, userids, resolved):
    raise CryptographicFailure("injected certification failure")


def test_generate_discards_custodian_keys_when_certification_fails(remote_backend, custodian, monkeypatch):
    monkeypatch.setattr(CertificateAssembler, "certify", _broken_certify)
    with pytest.raises(CryptographicFailure):
        generate(remote_backend, "rita")
    assert custodian.keys == {}


def test_generate_discards_custodian_keys_when_certificate_upload_fails(remote_backend, custodian, monkeypatch):
    from pgp_guardian.providers.remote import RemoteKeyProvider

    def refuse(self, certificate):
        raise ProviderUnavailable("injected upload failure", identity=self.name)

    monkeypatch.setattr(RemoteKeyProvider, "store_certificate", refuse)
    with pytest.raises(ProviderUnavailable):
        generate(remote_backend, "sam")
    assert custodian.keys == {}


def test_generate_leaves_no_local_bundle_when_certification_fails(store, local_backend, monkeypatch):
    monkeypatch.setattr(CertificateAssembler, "certify", _broken_certify)
    with pytest.raises(CryptographicFailure):
        generate(local_backend, "tess")
    assert not store.exists("tess")
    monkeypatch.undo()
    generate(local_backend, "tess")
    assert store.exists("tess")


def test_generate_leaves_no_bundle_file_when_certification_fails(tmp_path, monkeypatch):
    path = tmp_path / "uma.json"
    monkeypatch.setattr(CertificateAssembler, "certify", _broken_certify)
    with pytest.raises(CryptographicFailure):
        generate(BundleFileBackend(path), "uma")
    assert not path.exists()


@pytest.mark.parametrize("text, kind, target", [
    ("local:alice", "local", "alice"),
    ("local-file:/tmp/a.json", "local-file", "/tmp/a.json"),
    ("remote:team/alice", "remote", "team/alice"),
    ("alice", "remote", "alice"),
    ("dsm:alice", "remote", "dsm:alice"),
])
def test_backend_spec_parse(text, kind, target):
    spec = BackendSpec.parse(text)
    assert (spec.kind, spec.target) == (kind, target)


@pytest.mark.parametrize("text", ["", "local:", "remote:"])
def test_backend_spec_rejects_empty(text):
    with pytest.raises(ValueError):
        BackendSpec.parse(text)


def test_key_manager_requires_custodian_config(tmp_path):
    manager = KeyManager(store_dir=tmp_path, custodian=CustodianConfig(endpoint=None, api_key=None))
    with pytest.raises(ProviderRejected):
        manager.open(BackendSpec.parse("remote:alice"))


def test_key_manager_wires_backends(tmp_path, transport, custodian):
    config = CustodianConfig(endpoint="https://custodian.test/api", api_key="test-api-key", timeout=5.0)
    with KeyManager(store_dir=tmp_path, custodian=config, transport=transport) as manager:
        assert isinstance(manager.backend(BackendSpec.parse("local:x")), LocalBackend)
        assert isinstance(manager.backend(BackendSpec.parse("local-file:x.json")), BundleFileBackend)
        remote = manager.backend(BackendSpec.parse("x"))
        assert isinstance(remote, RemoteBackend)
        remote.create("x", CipherSuite.CV25519, CREATED)
    assert "x" in custodian.keys
