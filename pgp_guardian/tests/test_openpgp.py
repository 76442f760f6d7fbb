import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, x25519
from pgpy import PGPKey
from pgpy.constants import EllipticCurveOID, HashAlgorithm, PubKeyAlgorithm, SymmetricKeyAlgorithm
from pgpy.packet.packets import LiteralData, PubKeyV4

from pgp_guardian.openpgp.armor import MESSAGE, PUBLIC_KEY_BLOCK, armor, dearmor, is_armored, unarmor_if_needed
from pgp_guardian.openpgp.keys import describe_algorithm, key_bits, key_packet
from pgp_guardian.openpgp.packets import FILENAME_LIMIT, literal_bytes, literal_packet, read_packets, wire_filename
from pgp_guardian.openpgp.session import decode_session_key, ecdh_peer, ecdh_unwrap
from pgp_guardian.policy.algorithms import cipher_by_name, hash_by_name
from pgp_guardian.utils.errors import CryptographicFailure, MalformedMessage

CREATED = 1_700_000_000
ALICE = "Alice Павловна Вишневская <alice@openpgp.example>"


def test_armor_round_trip_with_comment():
    payload = bytes(range(256)) * 3
    text = armor(payload, MESSAGE, comment="hello")
    assert is_armored(text)
    assert text.startswith(b"-----BEGIN PGP MESSAGE-----\nComment: hello\n\n")
    assert text.rstrip().endswith(b"-----END PGP MESSAGE-----")
    assert dearmor(text) == (MESSAGE, payload)


def test_armor_writes_utf8_comment():
    text = armor(b"\x99\x00\x01", PUBLIC_KEY_BLOCK, comment=ALICE)
    assert f"Comment: {ALICE}\n".encode("utf-8") in text
    assert dearmor(text) == (PUBLIC_KEY_BLOCK, b"\x99\x00\x01")


def test_dearmor_ignores_utf8_headers_written_elsewhere():
    body = armor(b"some packet data", MESSAGE).decode("utf-8").split("\n")
    body[1:1] = ["Version: Ünïcödé 1.0", f"Comment: {ALICE}"]
    text = "\r\n".join(body).encode("utf-8")
    assert dearmor(text) == (MESSAGE, b"some packet data")
    assert unarmor_if_needed(text) == b"some packet data"


def test_armor_detects_corruption():
    lines = armor(b"some packet data", MESSAGE).decode("utf-8").splitlines()
    body = lines[2]
    lines[2] = ("B" if body[0] != "B" else "C") + body[1:]
    with pytest.raises(MalformedMessage):
        dearmor("\n".join(lines).encode("utf-8"))


def test_dearmor_requires_checksum_line():
    lines = armor(b"some packet data", MESSAGE).decode("utf-8").splitlines()
    without_crc = [line for line in lines if not line.startswith("=")]
    with pytest.raises(MalformedMessage):
        dearmor("\n".join(without_crc).encode("utf-8"))


def test_dearmor_requires_tail():
    with pytest.raises(MalformedMessage):
        dearmor(b"-----BEGIN PGP MESSAGE-----\n\nAAAA\n")


def test_dearmor_rejects_non_utf8_input():
    with pytest.raises(MalformedMessage):
        dearmor(b"-----BEGIN PGP MESSAGE-----\nComment: \xff\xfe\n\nAAAA\n=twTO\n-----END PGP MESSAGE-----\n")


def test_binary_data_passes_through_unarmor():
    assert unarmor_if_needed(b"\xc4\x01x") == b"\xc4\x01x"


def test_literal_packet_round_trip():
    literal = literal_packet("Grüße".encode("utf-8"), "Grüße.txt", CREATED)
    (parsed,) = read_packets(bytes(literal))
    assert isinstance(parsed, LiteralData)
    assert literal_bytes(parsed) == "Grüße".encode("utf-8")
    assert parsed.filename == "Grüße.txt"
    assert parsed.format == "b"


def test_wire_filename_truncates_on_character_boundary():
    name = "ж" * 200
    raw = wire_filename(name).encode("latin-1")
    assert len(raw) <= FILENAME_LIMIT
    assert raw.decode("utf-8") == "ж" * (FILENAME_LIMIT // 2)


@pytest.mark.parametrize("data", [b"\x00\x01\x02", b"\x7f"])
def test_read_packets_rejects_invalid_tag_octet(data):
    with pytest.raises(MalformedMessage):
        read_packets(data)


def test_read_packets_skips_marker_packets():
    literal = bytes(literal_packet(b"payload"))
    marker = b"\xca\x03PGP"
    packets = read_packets(marker + literal)
    assert len(packets) == 1
    assert literal_bytes(packets[0]) == b"payload"


def test_session_key_checksum():
    key = SymmetricKeyAlgorithm.AES256.gen_key()
    checksum = (sum(key) & 0xFFFF).to_bytes(2, "big")
    payload = bytes([SymmetricKeyAlgorithm.AES256]) + key + checksum
    assert decode_session_key(payload) == (SymmetricKeyAlgorithm.AES256, key)
    broken = payload[:-1] + bytes([payload[-1] ^ 1])
    with pytest.raises(CryptographicFailure):
        decode_session_key(broken)
    with pytest.raises(CryptographicFailure):
        decode_session_key(bytes([SymmetricKeyAlgorithm.AES128]) + key + checksum)


@pytest.mark.parametrize("make_private", [
    x25519.X25519PrivateKey.generate,
    lambda: ec.generate_private_key(ec.SECP384R1()),
])
def test_ecdh_session_key_unwrap(make_private, wrap_session_key):
    private = make_private()
    recipient = key_packet(private.public_key(), CREATED, subkey=True, encryption=True)
    assert recipient.pkalg is PubKeyAlgorithm.ECDH
    pkesk, key = wrap_session_key(recipient)

    peer = ecdh_peer(pkesk, recipient)
    if isinstance(private, x25519.X25519PrivateKey):
        shared = private.exchange(x25519.X25519PublicKey.from_public_bytes(peer))
    else:
        shared = private.exchange(ec.ECDH(), ec.EllipticCurvePublicKey.from_encoded_point(private.curve, peer))
    assert ecdh_unwrap(recipient, shared, pkesk) == (SymmetricKeyAlgorithm.AES256, bytes(key))


def test_ecdh_unwrap_with_wrong_secret_fails(wrap_session_key):
    recipient = key_packet(x25519.X25519PrivateKey.generate().public_key(), CREATED, subkey=True, encryption=True)
    pkesk, _ = wrap_session_key(recipient)
    stranger = x25519.X25519PrivateKey.generate()
    wrong = stranger.exchange(x25519.X25519PublicKey.from_public_bytes(ecdh_peer(pkesk, recipient)))
    with pytest.raises(CryptographicFailure):
        ecdh_unwrap(recipient, wrong, pkesk)


def test_key_packet_parses_back_through_pgpy():
    private = ec.generate_private_key(ec.SECP256R1())
    packet = key_packet(private.public_key(), CREATED)
    (parsed,) = read_packets(bytes(packet))
    assert isinstance(parsed, PubKeyV4)
    assert parsed.fingerprint == packet.fingerprint
    assert parsed.keymaterial.oid == EllipticCurveOID.NIST_P256
    assert key_bits(parsed) == 256
    assert describe_algorithm(parsed) == "ECDSA (NIST P-256)"

    key = PGPKey()
    key |= parsed
    assert key.fingerprint == packet.fingerprint
    assert key.key_algorithm is PubKeyAlgorithm.ECDSA


def test_ed25519_key_packet():
    packet = key_packet(ed25519.Ed25519PrivateKey.generate().public_key(), CREATED)
    assert packet.pkalg is PubKeyAlgorithm.EdDSA
    assert describe_algorithm(packet) == "EdDSA (Ed25519)"
    assert len(str(packet.fingerprint)) == 40


def test_unsupported_key_type():
    with pytest.raises(CryptographicFailure):
        key_packet(object(), CREATED)


@pytest.mark.parametrize("name, expected", [
    ("SHA512", HashAlgorithm.SHA512),
    ("sha-256", HashAlgorithm.SHA256),
])
def test_hash_by_name(name, expected):
    assert hash_by_name(name) is expected


def test_algorithm_names_reject_unknown():
    with pytest.raises(ValueError):
        hash_by_name("WHIRLPOOL")
    with pytest.raises(ValueError):
        cipher_by_name("ROT13")
    assert cipher_by_name("aes256") is SymmetricKeyAlgorithm.AES256
