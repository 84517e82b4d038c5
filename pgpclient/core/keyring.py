"""
Local key store.

The message pipeline only needs two lookups, expressed by the
:class:`KeyStore` protocol. :class:`KeyRing` is the in-memory implementation;
it indexes every key under the IDs of its primary key and all subkeys, since
messages name whichever of them actually encrypted or signed. It can also be
filled from a directory of key files so the CLI can address keys by name:

    <name>.pub   armored transferable public key
    <name>.sec   JSON: {"version": 1, "public": <b64 key>, "protected": <b64 blob>}
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import Protocol

from .errors import KeyFormatError, KeyNotFoundError
from .keys import PublicKey, SecretKey, format_key_id

logger = logging.getLogger(__name__)

SECRET_FILE_VERSION = 1
PUBLIC_SUFFIX = ".pub"
SECRET_SUFFIX = ".sec"


class KeyStore(Protocol):
    def find_secret_key(self, key_id: int) -> SecretKey | None: ...

    def find_public_key(self, key_id: int) -> PublicKey | None: ...


class KeyRing:
    """Secret and public keys indexed by 64-bit key ID and by name."""

    def __init__(self) -> None:
        self._secret: dict[int, SecretKey] = {}
        self._public: dict[int, PublicKey] = {}
        self._names: dict[str, int] = {}

    def add_public_key(self, key: PublicKey, name: str | None = None) -> None:
        for key_id in key.key_ids:
            self._public[key_id] = key
        if name:
            self._names[name] = key.key_id

    def add_secret_key(self, key: SecretKey, name: str | None = None) -> None:
        """Adding a secret key also makes its public half available."""
        for key_id in key.key_ids:
            self._secret[key_id] = key
        self.add_public_key(key.public_key, name)

    def find_secret_key(self, key_id: int) -> SecretKey | None:
        return self._secret.get(key_id)

    def find_public_key(self, key_id: int) -> PublicKey | None:
        return self._public.get(key_id)

    def public_key_named(self, name: str) -> PublicKey:
        key_id = self._names.get(name)
        if key_id is None:
            raise KeyNotFoundError(f"No key named {name!r} in the key ring")
        return self._public[key_id]

    def secret_key_named(self, name: str) -> SecretKey:
        key_id = self._names.get(name)
        key = None if key_id is None else self._secret.get(key_id)
        if key is None:
            raise KeyNotFoundError(f"No secret key named {name!r} in the key ring")
        return key

    def __len__(self) -> int:
        return len({key.fingerprint for key in self._public.values()})

    # ------- directory import / export -------

    @classmethod
    def load(cls, directory: str | os.PathLike) -> "KeyRing":
        ring = cls()
        root = Path(directory)
        if not root.is_dir():
            logger.debug("Key ring directory %s does not exist", root)
            return ring
        for path in sorted(root.iterdir()):
            if path.suffix == SECRET_SUFFIX:
                ring.add_secret_key(read_secret_key(path), path.stem)
            elif path.suffix == PUBLIC_SUFFIX:
                ring.add_public_key(read_public_key(path), path.stem)
        logger.debug("Loaded %d keys from %s", len(ring), root)
        return ring


def read_public_key(path: str | os.PathLike) -> PublicKey:
    try:
        return PublicKey.decode(Path(path).read_bytes())
    except KeyFormatError as exc:
        raise KeyFormatError(f"{path}: {exc}") from exc


def write_public_key(path: str | os.PathLike, key: PublicKey) -> None:
    Path(path).write_bytes(key.armored())


def read_secret_key(path: str | os.PathLike) -> SecretKey:
    try:
        doc = json.loads(Path(path).read_text())
        version = doc.get("version", 0)
        if not isinstance(version, int) or isinstance(version, bool):
            raise KeyFormatError(f"{path}: key file version must be an integer, got {version!r}")
        if version > SECRET_FILE_VERSION:
            raise KeyFormatError(
                f"{path}: key file version {version} is newer than supported "
                f"(max {SECRET_FILE_VERSION})"
            )
        public = PublicKey.decode(base64.b64decode(doc["public"], validate=True))
        protected = base64.b64decode(doc["protected"], validate=True)
    except (json.JSONDecodeError, KeyError, AttributeError, TypeError, binascii.Error) as exc:
        raise KeyFormatError(f"{path}: not a valid secret key file") from exc
    logger.debug("Read secret key %s from %s", format_key_id(public.key_id), path)
    return SecretKey(public, protected)


def write_secret_key(path: str | os.PathLike, key: SecretKey) -> None:
    doc = {
        "version": SECRET_FILE_VERSION,
        "public": base64.b64encode(key.public_key.encode()).decode(),
        "protected": base64.b64encode(key.protected).decode(),
    }
    Path(path).write_text(json.dumps(doc, indent=2) + "\n")
