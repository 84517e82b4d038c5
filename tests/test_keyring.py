"""Tests for the key ring and key files."""

import json
import tempfile
from pathlib import Path

import pytest

from pgpclient.core import armor
from pgpclient.core.errors import KeyFormatError, KeyNotFoundError
from pgpclient.core.keyring import (
    KeyRing,
    KeyStore,
    read_public_key,
    read_secret_key,
    write_public_key,
    write_secret_key,
)


class TestKeyRing:
    def test_secret_key_adds_public_half(self, alice):
        ring = KeyRing()
        ring.add_secret_key(alice, "alice")
        assert ring.find_secret_key(alice.key_id) is alice
        assert ring.find_public_key(alice.key_id) == alice.public_key
        assert len(ring) == 1

    def test_unknown_ids(self):
        ring = KeyRing()
        assert ring.find_secret_key(0x1234) is None
        assert ring.find_public_key(0x1234) is None

    def test_lookup_by_name(self, ring, alice, bob):
        assert ring.secret_key_named("alice") is alice
        assert ring.public_key_named("bob") == bob.public_key

    def test_missing_name(self, ring):
        with pytest.raises(KeyNotFoundError):
            ring.public_key_named("mallory")

    def test_public_only_name_has_no_secret(self, ring):
        with pytest.raises(KeyNotFoundError, match="secret"):
            ring.secret_key_named("bob")

    def test_satisfies_protocol(self, ring):
        store: KeyStore = ring
        assert store.find_public_key(0) is None


class TestKeyFiles:
    def test_public_key_roundtrip(self, bob):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "bob.pub"
            write_public_key(path, bob.public_key)
            assert path.read_bytes().startswith(b"-----BEGIN PGP PUBLIC KEY BLOCK-----")
            loaded = read_public_key(path)
            assert loaded == bob.public_key
            assert loaded.user_ids == bob.public_key.user_ids

    def test_public_key_file_must_be_key_block(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "x.pub"
            path.write_bytes(armor.encode(b"\xcb\x00", armor.KIND_MESSAGE))
            with pytest.raises(KeyFormatError, match="cannot be parsed"):
                read_public_key(path)

    def test_secret_key_roundtrip(self, alice):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "alice.sec"
            write_secret_key(path, alice)
            loaded = read_secret_key(path)
            assert loaded.key_id == alice.key_id
            assert loaded.protected == alice.protected

    def test_secret_key_file_garbage(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "bad.sec"
            path.write_text("not json")
            with pytest.raises(KeyFormatError):
                read_secret_key(path)

    def test_secret_key_file_newer_version(self, alice):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "alice.sec"
            write_secret_key(path, alice)
            doc = json.loads(path.read_text())
            doc["version"] = 99
            path.write_text(json.dumps(doc))
            with pytest.raises(KeyFormatError, match="newer"):
                read_secret_key(path)

    def test_load_directory(self, alice, bob):
        with tempfile.TemporaryDirectory() as tmpdir:
            write_secret_key(Path(tmpdir) / "alice.sec", alice)
            write_public_key(Path(tmpdir) / "alice.pub", alice.public_key)
            write_public_key(Path(tmpdir) / "bob.pub", bob.public_key)
            (Path(tmpdir) / "notes.txt").write_text("ignored")
            ring = KeyRing.load(tmpdir)
            assert len(ring) == 2
            assert ring.secret_key_named("alice").key_id == alice.key_id
            assert ring.public_key_named("bob") == bob.public_key

    def test_load_missing_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            assert len(KeyRing.load(Path(tmpdir) / "absent")) == 0

    @pytest.mark.parametrize("version", ["1", True, 1.5, None])
    def test_secret_key_file_version_not_integer(self, alice, version):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "alice.sec"
            write_secret_key(path, alice)
            doc = json.loads(path.read_text())
            doc["version"] = version
            path.write_text(json.dumps(doc))
            with pytest.raises(KeyFormatError, match="must be an integer"):
                read_secret_key(path)

    def test_secret_key_file_not_an_object(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "list.sec"
            path.write_text("[1, 2]")
            with pytest.raises(KeyFormatError, match="not a valid secret key file"):
                read_secret_key(path)

    def test_load_directory_indexes_subkeys(self, carol):
        with tempfile.TemporaryDirectory() as tmpdir:
            write_public_key(Path(tmpdir) / "carol.pub", carol.public_key)
            ring = KeyRing.load(tmpdir)
            assert len(ring) == 1
            for key_id in carol.key_ids:
                assert ring.find_public_key(key_id) == carol.public_key
