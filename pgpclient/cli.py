"""
Command-line interface.

Keys live in a key ring directory (``--keyring``, default
``~/.config/pgpclient/keys``): ``NAME.sec`` holds a protected secret key,
``NAME.pub`` an armored public key. ``--from`` and ``--to`` select keys by NAME.
Passphrases are always read interactively, never from argv.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
import warnings
from pathlib import Path

from .core.ciphers import ALGORITHM_CHOICES, COMPRESSION_CHOICES, EncryptionAlgorithm
from .core.config import apply_config_defaults, default_keyring_dir, load_config, save_config
from .core.errors import (
    KeyNotFoundError,
    KeyFormatError,
    KeyUnlockError,
    PgpError,
    SignatureVerificationError,
)
from .core.kdf import KDF_CHOICES
from .core.keyring import (
    PUBLIC_SUFFIX,
    SECRET_SUFFIX,
    KeyRing,
    write_public_key,
    write_secret_key,
)
from .core.keys import PublicKey, SecretKey, format_key_id, load_key
from .core.message import MessageEnvelope
from .core.pipeline import PgpPipeline

MAX_INPUT_SIZE = 100 * 1024 * 1024  # 100 MiB


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pgpclient",
        description="pgpclient: compose and read OpenPGP messages",
    )
    parser.add_argument(
        "-o", "--operation",
        choices=["encrypt", "decrypt", "inspect", "import-key"],
        required=True,
        help="Operation to perform",
    )
    parser.add_argument(
        "-d", "--data",
        help="Message text (encrypt) or armored message (decrypt/inspect). "
             "Use '-' to read from stdin.",
    )
    parser.add_argument(
        "-f", "--file",
        help="Read the message from FILE. Encrypted output goes to FILE.asc "
             "(armored) or FILE.pgp unless --output is given.",
    )
    parser.add_argument(
        "--output",
        help="Explicit output file path.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite output files if they already exist.",
    )
    parser.add_argument(
        "--keyring",
        default=None,
        help="Key ring directory (default: ~/.config/pgpclient/keys)",
    )
    parser.add_argument(
        "--from", dest="sender",
        help="Name of the secret key to sign with",
    )
    parser.add_argument(
        "--to", dest="recipient",
        help="Name of the public key to encrypt for",
    )
    parser.add_argument(
        "--algorithm",
        choices=list(ALGORITHM_CHOICES.keys()),
        default="aes256",
        help="Symmetric cipher, 'none' for no encryption (default: aes256)",
    )
    parser.add_argument("--sign", action="store_true", help="Sign the message")
    parser.add_argument("--compress", action="store_true", help="Compress the message")
    parser.add_argument(
        "--compression",
        choices=list(COMPRESSION_CHOICES.keys()),
        default="zip",
        help="Compression algorithm used with --compress (default: zip)",
    )
    parser.add_argument("--armor", action="store_true", help="ASCII-armor the output")
    parser.add_argument(
        "--key",
        help="OpenPGP key file to import, armored or binary, secret or public (import-key)",
    )
    parser.add_argument(
        "--name",
        help="Key ring name for the imported key",
    )
    parser.add_argument(
        "--kdf",
        choices=list(KDF_CHOICES.keys()),
        default="Argon2id",
        help="Passphrase KDF protecting imported keys (default: Argon2id)",
    )
    parser.add_argument(
        "--save-defaults",
        action="store_true",
        help="Store --keyring, --algorithm, --kdf, --compression and the layer flags as defaults",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log pipeline stages to stderr",
    )
    return parser


def _read_password(prompt: str = "Enter passphrase: ", confirm: bool = False) -> str:
    """Read a passphrase from the terminal.

    Falls back to one line of stdin when no TTY is available at all.
    """
    try:
        pwd = getpass.getpass(prompt)
    except OSError:
        pwd = sys.stdin.readline().rstrip("\n")
        if confirm:
            print(
                "Warning: passphrase confirmation skipped (no terminal available).",
                file=sys.stderr,
            )
        return pwd

    if confirm:
        try:
            pwd2 = getpass.getpass("Confirm passphrase: ")
        except OSError:
            print("Error: cannot confirm passphrase without a terminal.", file=sys.stderr)
            sys.exit(1)
        if pwd != pwd2:
            print("Error: passphrases do not match.", file=sys.stderr)
            sys.exit(1)

    return pwd


def _print_status(msg: str, error: bool = False) -> None:
    stream = sys.stderr if error else sys.stdout
    print(msg, file=stream)


def _fail(msg: str) -> None:
    _print_status(f"Error: {msg}", error=True)
    sys.exit(1)


def _check_overwrite(path: str, force: bool) -> None:
    """Abort if output file exists and --force was not given."""
    if os.path.exists(path) and not force:
        _fail(
            f"output file already exists: {path}\n"
            "  Use --force to overwrite, or --output to choose a different path."
        )


def _read_input(args) -> bytes:
    if args.file:
        if not os.path.isfile(args.file):
            _fail(f"file not found: {args.file}")
        size = os.path.getsize(args.file)
        if size > MAX_INPUT_SIZE:
            _fail(f"file too large ({size / 1024 / 1024:.1f} MiB, max 100 MiB)")
        with open(args.file, "rb") as f:
            return f.read()
    if args.data == "-":
        return sys.stdin.buffer.read() if hasattr(sys.stdin, "buffer") \
            else sys.stdin.read().encode("utf-8")
    if args.data is not None:
        return args.data.encode("utf-8")
    _fail("no input: use -d/--data or -f/--file")


def _write_output(path: str, data: bytes, force: bool) -> None:
    _check_overwrite(path, force)
    with open(path, "wb") as f:
        f.write(data)


def _print_envelope(envelope: MessageEnvelope) -> None:
    def yes_no(flag: bool) -> str:
        return "yes" if flag else "no"

    _print_status(f"Armored:             {yes_no(envelope.is_transport_encoded)}")
    _print_status(f"Encrypted:           {yes_no(envelope.is_encrypted)}")
    if envelope.receiver_key_id:
        _print_status(f"Recipient key:       {format_key_id(envelope.receiver_key_id)}")
    if envelope.symmetric_algorithm_name:
        _print_status(f"Cipher:              {envelope.symmetric_algorithm_name}")
    if envelope.decrypted_message is None:
        return
    _print_status(f"Compressed:          {yes_no(envelope.is_compressed)}")
    _print_status(f"Signed:              {yes_no(envelope.is_signed)}")
    if envelope.is_encrypted:
        _print_status(f"Integrity verified:  {yes_no(envelope.is_integrity_verified)}")
    if envelope.is_signed:
        _print_status(f"Signature verified:  {yes_no(envelope.is_signature_verified)}")
        if envelope.sender_key_id:
            _print_status(f"Signer key:          {format_key_id(envelope.sender_key_id)}")


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def _run_encrypt(args, ring: KeyRing) -> None:
    algorithm = ALGORITHM_CHOICES[args.algorithm]
    sender = receiver = None
    if args.sign:
        if not args.sender:
            _fail("--sign needs --from NAME")
        sender = ring.secret_key_named(args.sender)
    if algorithm is not EncryptionAlgorithm.NONE:
        if not args.recipient:
            _fail("encryption needs --to NAME (or --algorithm none)")
        receiver = ring.public_key_named(args.recipient)

    data = _read_input(args)
    passphrase = _read_password(f"Passphrase for {args.sender}: ") if args.sign else None
    filename = os.path.basename(args.file) if args.file else ""

    pipeline = PgpPipeline(ring, compression=COMPRESSION_CHOICES[args.compression])
    result = pipeline.compose(
        data, sender, receiver, algorithm, passphrase,
        args.sign, args.compress, args.armor, filename=filename,
    )

    out_path = args.output
    if out_path is None and args.file:
        out_path = args.file + (".asc" if args.armor else ".pgp")
    if out_path is None:
        if not args.armor:
            _fail("binary output needs --output or -f (or use --armor)")
        print(result.decode("ascii"), end="")
        return
    _write_output(out_path, result, args.force)
    _print_status(f"Wrote {len(result)} bytes to {out_path}")


def _run_decrypt(args, ring: KeyRing) -> None:
    envelope = MessageEnvelope(encrypted_message=_read_input(args))
    pipeline = PgpPipeline(ring)
    pipeline.inspect_envelope(envelope)

    if envelope.is_encrypted:
        if not envelope.receiver_key_id:
            raise KeyNotFoundError("No secret key in the key ring can open this message")
        passphrase = _read_password(
            f"Passphrase for key {format_key_id(envelope.receiver_key_id)}: "
        )
        pipeline.decrypt_and_verify(passphrase, envelope)

    _print_envelope(envelope)
    if envelope.is_encrypted and not envelope.is_integrity_verified:
        _print_status("Warning: message integrity could not be verified.", error=True)

    if args.output:
        _write_output(args.output, envelope.decrypted_message, args.force)
        _print_status(f"Wrote {len(envelope.decrypted_message)} bytes to {args.output}")
    else:
        _print_status("")
        print(envelope.decrypted_message.decode("utf-8", errors="replace"))


def _run_inspect(args, ring: KeyRing) -> None:
    envelope = MessageEnvelope(encrypted_message=_read_input(args))
    PgpPipeline(ring).inspect_envelope(envelope)
    _print_envelope(envelope)


def _run_import_key(args, keyring_dir: Path) -> None:
    if not (args.key and args.name):
        _fail("import-key needs --key and --name")
    if not os.path.isfile(args.key):
        _fail(f"file not found: {args.key}")
    with open(args.key, "rb") as f:
        key = load_key(f.read())

    keyring_dir.mkdir(parents=True, exist_ok=True)
    sec_path = keyring_dir / (args.name + SECRET_SUFFIX)
    pub_path = keyring_dir / (args.name + PUBLIC_SUFFIX)
    _check_overwrite(str(pub_path), args.force)

    if key.is_public:
        public = PublicKey(key)
        write_public_key(pub_path, public)
        _print_status(f"Imported {public!r} as {args.name!r} into {keyring_dir}")
        return

    _check_overwrite(str(sec_path), args.force)
    prompt = "Passphrase of the key: " if key.is_protected else "Passphrase for the new key: "
    passphrase = _read_password(prompt, confirm=not key.is_protected)
    if not passphrase:
        _fail("passphrase cannot be empty")

    secret = SecretKey.protect(key, passphrase, kdf=KDF_CHOICES[args.kdf]())
    write_secret_key(sec_path, secret)
    os.chmod(sec_path, 0o600)
    write_public_key(pub_path, secret.public_key)
    _print_status(f"Imported {secret!r} as {args.name!r} into {keyring_dir}")


def _describe_error(exc: PgpError) -> str:
    if isinstance(exc, KeyUnlockError):
        return f"could not unlock key: {exc}\n  Hint: check the passphrase."
    if isinstance(exc, KeyNotFoundError):
        return f"{exc}\n  Hint: import the key with -o import-key or pick another --keyring."
    if isinstance(exc, KeyFormatError):
        return f"{exc}\n  Hint: export the key as an OpenPGP transferable key (armored or binary)."
    if isinstance(exc, SignatureVerificationError):
        return "signature does not match the message. Do not trust its contents."
    return str(exc)


def run_cli(argv: list[str] | None = None) -> None:
    """Run the CLI interface."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    apply_config_defaults(args, load_config())

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        logging.captureWarnings(True)
    else:
        # PGPy warns about self-signature details it does not check yet.
        warnings.filterwarnings("ignore", category=UserWarning, module="pgpy")

    if args.save_defaults:
        save_config({
            "keyring": args.keyring or "",
            "algorithm": args.algorithm,
            "kdf": args.kdf,
            "sign": args.sign,
            "compress": args.compress,
            "compression": args.compression,
            "armor": args.armor,
        })

    keyring_dir = Path(args.keyring).expanduser() if args.keyring else default_keyring_dir()
    try:
        if args.operation == "import-key":
            _run_import_key(args, keyring_dir)
            return
        ring = KeyRing.load(keyring_dir)
        if args.operation == "encrypt":
            _run_encrypt(args, ring)
        elif args.operation == "decrypt":
            _run_decrypt(args, ring)
        else:
            _run_inspect(args, ring)
    except PgpError as exc:
        _fail(_describe_error(exc))
