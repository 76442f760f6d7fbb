# CLI implementation using Typer: generate, extract-cert, sign, verify, encrypt, decrypt, inspect.
from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from . import __version__
from .audit.logger import get_logger
from .config import CONFIG, CustodianConfig
from .models import CipherSuite
from .openpgp.armor import MESSAGE, SIGNATURE, armor
from .openpgp.certificate import Certificate, load_certificates
from .policy.expiration import ExpirationPolicy, format_utc
from .providers import BundleFileBackend, LocalKeyProvider
from .services.certificate import CertificateAssembler
from .services.inspect import dump_packets, inspect as inspect_data
from .services.key_manager import BackendSpec, KeyManager
from .services.message import MessageEngine, VerificationResult
from .utils.errors import (
    AppError,
    CertificateMismatch,
    CryptographicFailure,
)

app = typer.Typer(help="PGP Guardian CLI", no_args_is_help=True)

#* Kinds that mean "the data did not check out"; everything else is usage or provider trouble.
_VERIFY_FAILURES = (CertificateMismatch, CryptographicFailure)


def _setup_logger(audit: bool):
    if audit:
        get_logger()  # initialize JSON logger on stderr


def _version(value: bool):
    if value:
        typer.echo(f"pgp-guardian {__version__}")
        raise typer.Exit()


@contextmanager
def _errors() -> Iterator[None]:
    try:
        yield
    except AppError as exc:
        typer.echo(f"Error: {exc.describe()}", err=True)
        raise typer.Exit(code=1 if isinstance(exc, _VERIFY_FAILURES) else 2)
    except (ValueError, OSError) as exc:
        typer.echo(f"Error: Usage: {exc}", err=True)
        raise typer.Exit(code=2)


def _manager(ctx: typer.Context) -> KeyManager:
    return ctx.obj["manager"]


def _write_new(path: Path, data: bytes) -> None:
    try:
        with open(path, "xb") as fh:
            fh.write(data)
    except FileExistsError:
        raise ValueError(f"Output file {path} already exists") from None


def _ensure_new(path: Path) -> None:
    if path.exists():
        raise ValueError(f"Output file {path} already exists")


def _emit(data: bytes, output: Optional[Path] = None) -> None:
    if output is not None:
        _write_new(output, data)
    else:
        typer.echo(data, nl=False)


def _load_certs(paths: List[Path]) -> List[Certificate]:
    certs: List[Certificate] = []
    for path in paths:
        certs.extend(load_certificates(path.read_bytes()))
    return certs


def _report(result: VerificationResult) -> None:
    for check in result.checks:
        typer.echo(check.describe(), err=True)
    typer.echo(
        f"{len(result.good)} good signatures, {len(result.bad)} bad, {len(result.missing)} without certificate",
        err=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    store_dir: Optional[Path] = typer.Option(None, "--store-dir", envvar="PGG_STORE_DIR", help="Local keystore directory"),
    custodian_endpoint: Optional[str] = typer.Option(None, "--custodian-endpoint", help="Key custodian base URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Key custodian API key"),
    audit: bool = typer.Option(False, "--audit", help="Emit structured logs"),
    version: bool = typer.Option(False, "--version", callback=_version, is_eager=True, help="Show version"),
):
    """OpenPGP keys and messages, with private keys held locally or by a key custodian"""
    _setup_logger(audit)
    settings = ctx.obj or {}
    custodian = CustodianConfig(
        endpoint=custodian_endpoint or CONFIG.custodian.endpoint,
        api_key=api_key or CONFIG.custodian.api_key,
        timeout=CONFIG.custodian.timeout,
    )
    passphrase = os.getenv("PGG_PASSPHRASE")
    manager = KeyManager(
        store_dir=store_dir,
        custodian=custodian,
        passphrase=passphrase.encode("utf-8") if passphrase else None,
        transport=settings.get("transport"),
    )
    ctx.obj = {"manager": manager}
    ctx.call_on_close(manager.close)


@app.command("generate")
def generate(
    ctx: typer.Context,
    userid: List[str] = typer.Option(..., "--userid", help="User ID; repeat for more, the first is primary"),
    backend: Optional[str] = typer.Option(None, "--backend", help="local:NAME, local-file:PATH, remote:NAME or NAME"),
    cipher_suite: str = typer.Option(CONFIG.crypto.cipher_suite, "--cipher-suite", help="cv25519|nistp256|nistp384|nistp521|rsa2k|rsa3k|rsa4k"),
    expires: Optional[str] = typer.Option(None, "--expires", help="ISO 8601 timestamp, or 'never'"),
    expires_in: Optional[str] = typer.Option(None, "--expires-in", help="Duration N[ymwds], or 'never'"),
    export: Optional[Path] = typer.Option(None, "--export", help="Write the local key bundle to this file"),
    passphrase: Optional[str] = typer.Option(None, "--passphrase", help="Seal local private keys with a passphrase"),
):
    """Generate a key and its certificate"""
    manager = _manager(ctx)
    with _errors():
        policy = ExpirationPolicy.parse(expires, expires_in)
        suite = CipherSuite.parse(cipher_suite)
        if passphrase:
            manager.passphrase = passphrase.encode("utf-8")
        if export is not None:
            _ensure_new(export)
        if backend is not None:
            spec = BackendSpec.parse(backend)
            target = manager.backend(spec)
            name = Path(spec.target).stem if spec.kind == "local-file" else spec.target
        elif export is not None:
            target = BundleFileBackend(export, manager.passphrase)
            name = export.stem
        else:
            raise ValueError("Either --backend or --export is required")

        provider, _ = CertificateAssembler().generate(target, name, userid, suite, policy)
        if backend is not None and export is not None:
            if not isinstance(provider, LocalKeyProvider):
                raise ValueError("--export only applies to local keys")
            _write_new(export, provider.bundle.to_json().encode("utf-8"))


@app.command("extract-cert")
def extract_cert(
    ctx: typer.Context,
    key_file: Optional[Path] = typer.Argument(None, exists=True, dir_okay=False, help="Local key bundle file"),
    backend: Optional[str] = typer.Option(None, "--backend", help="local:NAME, local-file:PATH, remote:NAME or NAME"),
    binary: bool = typer.Option(False, "--binary", help="Emit binary instead of ASCII armor"),
):
    """Print the certificate of an existing key"""
    with _errors():
        if (key_file is None) == (backend is None):
            raise ValueError("Give either --backend or a key file")
        spec = BackendSpec.parse(backend) if backend else BackendSpec("local-file", str(key_file))
        provider = _manager(ctx).open(spec)
        cert = CertificateAssembler().extract(provider)
        _emit(cert.to_bytes() if binary else cert.armored())


@app.command("sign")
def sign(
    ctx: typer.Context,
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    backend: List[str] = typer.Option(..., "--backend", help="Signing key; repeat for several signers"),
    detached: bool = typer.Option(False, "--detached", help="Emit detached signatures only"),
    binary: bool = typer.Option(False, "--binary", help="Emit binary instead of ASCII armor"),
    output: Optional[Path] = typer.Option(None, "--output", help="Output file (default: stdout)"),
):
    """Sign a file with one or more keys"""
    with _errors():
        if output is not None:
            _ensure_new(output)
        manager = _manager(ctx)
        signers = [manager.open(BackendSpec.parse(b)) for b in backend]
        message = MessageEngine().sign(input_file.read_bytes(), signers, detached=detached, filename=input_file.name)
        _emit(message if binary else armor(message, SIGNATURE if detached else MESSAGE), output)


@app.command("verify")
def verify(
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    signer_cert: List[Path] = typer.Option(..., "--signer-cert", exists=True, dir_okay=False, help="Candidate signer certificate"),
    detached: Optional[Path] = typer.Option(None, "--detached", exists=True, dir_okay=False, help="Detached signature file"),
    signatures: Optional[int] = typer.Option(None, "--signatures", min=1, help="Good signatures required (default: all)"),
    output: Optional[Path] = typer.Option(None, "--output", help="Write the verified content here"),
):
    """Verify a signed file; exit 0 only if the required signatures are good"""
    with _errors():
        if output is not None:
            _ensure_new(output)
        certs = _load_certs(signer_cert)
        engine = MessageEngine()
        if detached is not None:
            result = engine.verify(detached.read_bytes(), certs, data=input_file.read_bytes())
        else:
            result = engine.verify(input_file.read_bytes(), certs)
        _report(result)
        result.require(signatures)
        if output is not None and detached is None and result.plaintext is not None:
            _write_new(output, result.plaintext)


@app.command("encrypt")
def encrypt(
    ctx: typer.Context,
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    recipient_cert: List[Path] = typer.Option(..., "--recipient-cert", exists=True, dir_okay=False),
    output: Path = typer.Option(..., "--output", help="Encrypted output file"),
    signer_backend: List[str] = typer.Option([], "--signer-backend", help="Also sign with this key; repeatable"),
    binary: bool = typer.Option(False, "--binary", help="Emit binary instead of ASCII armor"),
):
    """Encrypt a file to one or more certificates"""
    with _errors():
        _ensure_new(output)
        certs = _load_certs(recipient_cert)
        manager = _manager(ctx)
        signers = [manager.open(BackendSpec.parse(b)) for b in signer_backend]
        message = MessageEngine().encrypt(input_file.read_bytes(), certs, signers, filename=input_file.name)
        _write_new(output, message if binary else armor(message, MESSAGE))


@app.command("decrypt")
def decrypt(
    ctx: typer.Context,
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    backend: str = typer.Option(..., "--backend", help="Decryption key"),
    output: Path = typer.Option(..., "--output", help="Plaintext output file"),
    signer_cert: List[Path] = typer.Option([], "--signer-cert", exists=True, dir_okay=False, help="Require a signature by this certificate"),
    signatures: Optional[int] = typer.Option(None, "--signatures", min=1, help="Good signatures required (default: all)"),
):
    """Decrypt a file; with --signer-cert, also require valid signatures"""
    with _errors():
        _ensure_new(output)
        provider = _manager(ctx).open(BackendSpec.parse(backend))
        certs = _load_certs(signer_cert)
        result = MessageEngine().decrypt(input_file.read_bytes(), provider, certs)
        if certs:
            _report(result.verification)
            result.verification.require(signatures)
        _write_new(output, result.plaintext)


@app.command("inspect")
def inspect(
    input_file: Optional[Path] = typer.Argument(None, dir_okay=False, help="File to inspect (default: stdin)"),
    packets: bool = typer.Option(False, "--packets", help="Dump the packet sequence"),
):
    """Describe a certificate, signature or message"""
    with _errors():
        if input_file is None or str(input_file) == "-":
            data = typer.get_binary_stream("stdin").read()
            source = "-"
        else:
            data = input_file.read_bytes()
            source = str(input_file)
        typer.echo(dump_packets(data) if packets else inspect_data(data, source), nl=False)


@app.command("list-keys")
def list_keys(ctx: typer.Context):
    """List keys in the local keystore"""
    with _errors():
        keys = _manager(ctx).list_keys()
        if not keys:
            typer.echo("No keys found")
            raise typer.Exit(code=0)
        for k in keys:
            created = format_utc(k.created_at)
            typer.echo(f"{k.handle!s:<24} {k.suite:<9} {created} {k.fingerprint or '-'} {k.userid or ''}".rstrip())


if __name__ == "__main__":
    app()
