"""Tests for the command-line interface."""

from pathlib import Path

import pytest
from pgpy.constants import HashAlgorithm, SymmetricKeyAlgorithm

from pgpclient import cli
from pgpclient.cli import run_cli
from pgpclient.core.keyring import KeyRing
from pgpclient.core.keys import load_key

from conftest import FAST_ARGON2, PASSPHRASE


def _import(path: Path, name: str, directory: Path, *extra: str) -> None:
    run_cli(["-o", "import-key", "--key", str(path), "--name", name,
             "--keyring", str(directory), *extra])


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """No user config, fast KDF, scripted passphrase prompts."""
    monkeypatch.setattr("pgpclient.core.config._CONFIG_DIR", tmp_path / "config")
    monkeypatch.setattr("pgpclient.core.config._CONFIG_FILE", tmp_path / "config" / "config.toml")
    monkeypatch.setitem(cli.KDF_CHOICES, "Argon2id", lambda: FAST_ARGON2)
    monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": PASSPHRASE)


@pytest.fixture
def keyring_dir(tmp_path, alice_key, bob_key):
    """Key ring directory holding Alice's and Bob's imported secret keys."""
    directory = tmp_path / "keys"
    for name, key in (("alice", alice_key), ("bob", bob_key)):
        exported = tmp_path / f"{name}.asc"
        exported.write_text(str(key))
        _import(exported, name, directory)
    return directory


class TestImportKey:
    def test_creates_key_files(self, keyring_dir):
        assert (keyring_dir / "alice.sec").exists()
        assert (keyring_dir / "alice.pub").exists()
        assert oct((keyring_dir / "alice.sec").stat().st_mode & 0o777) == "0o600"
        ring = KeyRing.load(keyring_dir)
        assert ring.secret_key_named("bob").user_ids == ["Bob <bob@example.org>"]

    def test_public_key_only(self, tmp_path, carol_key):
        exported = tmp_path / "carol.asc"
        exported.write_text(str(carol_key.pubkey))
        _import(exported, "carol", tmp_path / "keys")
        assert (tmp_path / "keys" / "carol.pub").exists()
        assert not (tmp_path / "keys" / "carol.sec").exists()

    def test_binary_key_file(self, tmp_path, dave_key):
        exported = tmp_path / "dave.gpg"
        exported.write_bytes(bytes(dave_key))
        _import(exported, "dave", tmp_path / "keys")
        assert KeyRing.load(tmp_path / "keys").secret_key_named("dave").user_ids == \
            ["Dave <dave@example.org>"]

    def test_passphrase_protected_key(self, tmp_path, dave_key):
        key = load_key(bytes(dave_key))
        key.protect(PASSPHRASE, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
        exported = tmp_path / "dave.asc"
        exported.write_text(str(key))
        _import(exported, "dave", tmp_path / "keys")
        assert (tmp_path / "keys" / "dave.sec").exists()

    def test_protected_key_wrong_passphrase(self, tmp_path, dave_key, monkeypatch, capsys):
        key = load_key(bytes(dave_key))
        key.protect(PASSPHRASE, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
        exported = tmp_path / "dave.asc"
        exported.write_text(str(key))
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": "wrong")
        with pytest.raises(SystemExit) as exc:
            _import(exported, "dave", tmp_path / "keys")
        assert exc.value.code == 1
        assert "could not unlock key" in capsys.readouterr().err
        assert not (tmp_path / "keys" / "dave.sec").exists()

    def test_not_a_key(self, tmp_path, capsys):
        exported = tmp_path / "junk.asc"
        exported.write_text("definitely not a key")
        with pytest.raises(SystemExit):
            _import(exported, "junk", tmp_path / "keys")
        assert "transferable key" in capsys.readouterr().err

    def test_refuses_overwrite(self, keyring_dir, tmp_path, alice_key, capsys):
        exported = tmp_path / "again.asc"
        exported.write_text(str(alice_key))
        with pytest.raises(SystemExit) as exc:
            _import(exported, "alice", keyring_dir)
        assert exc.value.code == 1
        assert "already exists" in capsys.readouterr().err

    def test_missing_arguments(self, capsys):
        with pytest.raises(SystemExit):
            run_cli(["-o", "import-key", "--key", "x.asc"])
        assert "--name" in capsys.readouterr().err

    def test_missing_key_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit):
            _import(tmp_path / "absent.asc", "x", tmp_path / "keys")
        assert "file not found" in capsys.readouterr().err


class TestEncryptDecrypt:
    def test_armored_roundtrip_via_stdout(self, keyring_dir, tmp_path, capsys):
        run_cli(["-o", "encrypt", "-d", "hello from the cli", "--from", "alice", "--to", "bob",
                 "--sign", "--compress", "--armor", "--keyring", str(keyring_dir)])
        armored = capsys.readouterr().out
        assert armored.startswith("-----BEGIN PGP MESSAGE-----")

        message = tmp_path / "msg.asc"
        message.write_text(armored)
        run_cli(["-o", "decrypt", "-f", str(message), "--keyring", str(keyring_dir)])
        out = capsys.readouterr().out
        assert "hello from the cli" in out
        assert "Signature verified:  yes" in out
        assert "Integrity verified:  yes" in out
        assert "Cipher:              AES256" in out

    def test_binary_file_roundtrip(self, keyring_dir, tmp_path):
        original = tmp_path / "secret.bin"
        original.write_bytes(bytes(range(256)) * 10)
        run_cli(["-o", "encrypt", "-f", str(original), "--to", "bob",
                 "--algorithm", "aes128", "--keyring", str(keyring_dir)])
        encrypted = tmp_path / "secret.bin.pgp"
        assert encrypted.exists()

        decrypted = tmp_path / "out.bin"
        run_cli(["-o", "decrypt", "-f", str(encrypted), "--output", str(decrypted),
                 "--keyring", str(keyring_dir)])
        assert decrypted.read_bytes() == original.read_bytes()

    @pytest.mark.parametrize("compression", ["zlib", "bzip2"])
    def test_compression_choice(self, keyring_dir, tmp_path, capsys, compression):
        out_file = tmp_path / "c.asc"
        run_cli(["-o", "encrypt", "-d", "squeeze " * 50, "--to", "bob", "--armor",
                 "--compress", "--compression", compression, "--output", str(out_file),
                 "--keyring", str(keyring_dir)])
        capsys.readouterr()
        run_cli(["-o", "decrypt", "-f", str(out_file), "--keyring", str(keyring_dir)])
        out = capsys.readouterr().out
        assert "Compressed:          yes" in out
        assert "squeeze squeeze" in out

    def test_signed_only(self, keyring_dir, tmp_path, capsys):
        out_file = tmp_path / "signed.pgp"
        run_cli(["-o", "encrypt", "-d", "just signed", "--algorithm", "none", "--sign",
                 "--from", "alice", "--output", str(out_file), "--keyring", str(keyring_dir)])
        capsys.readouterr()
        run_cli(["-o", "decrypt", "-f", str(out_file), "--keyring", str(keyring_dir)])
        out = capsys.readouterr().out
        assert "Encrypted:           no" in out
        assert "just signed" in out

    def test_wrong_passphrase(self, keyring_dir, tmp_path, monkeypatch, capsys):
        out_file = tmp_path / "m.pgp"
        run_cli(["-o", "encrypt", "-d", "x", "--to", "bob", "--output", str(out_file),
                 "--keyring", str(keyring_dir)])
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": "wrong")
        with pytest.raises(SystemExit) as exc:
            run_cli(["-o", "decrypt", "-f", str(out_file), "--keyring", str(keyring_dir)])
        assert exc.value.code == 1
        assert "could not unlock key" in capsys.readouterr().err

    def test_unknown_recipient(self, keyring_dir, capsys):
        with pytest.raises(SystemExit):
            run_cli(["-o", "encrypt", "-d", "x", "--to", "mallory", "--armor",
                     "--keyring", str(keyring_dir)])
        assert "mallory" in capsys.readouterr().err

    def test_encrypt_needs_recipient(self, keyring_dir, capsys):
        with pytest.raises(SystemExit):
            run_cli(["-o", "encrypt", "-d", "x", "--armor", "--keyring", str(keyring_dir)])
        assert "--to" in capsys.readouterr().err

    def test_binary_needs_destination(self, keyring_dir, capsys):
        with pytest.raises(SystemExit):
            run_cli(["-o", "encrypt", "-d", "x", "--to", "bob", "--keyring", str(keyring_dir)])
        assert "--output" in capsys.readouterr().err

    def test_refuses_overwrite(self, keyring_dir, tmp_path, capsys):
        out_file = tmp_path / "exists.asc"
        out_file.write_text("keep")
        with pytest.raises(SystemExit):
            run_cli(["-o", "encrypt", "-d", "x", "--to", "bob", "--armor",
                     "--output", str(out_file), "--keyring", str(keyring_dir)])
        assert out_file.read_text() == "keep"
        run_cli(["-o", "encrypt", "-d", "x", "--to", "bob", "--armor", "--force",
                 "--output", str(out_file), "--keyring", str(keyring_dir)])
        assert out_file.read_text().startswith("-----BEGIN PGP MESSAGE-----")

    def test_missing_input_file(self, keyring_dir, capsys):
        with pytest.raises(SystemExit):
            run_cli(["-o", "decrypt", "-f", "/nonexistent/file.pgp",
                     "--keyring", str(keyring_dir)])
        assert "file not found" in capsys.readouterr().err

    def test_garbage_input(self, keyring_dir, capsys):
        with pytest.raises(SystemExit):
            run_cli(["-o", "decrypt", "-d", "not a message", "--keyring", str(keyring_dir)])
        assert "neither" in capsys.readouterr().err


class TestInspect:
    def test_reports_recipient_without_passphrase(self, keyring_dir, tmp_path, monkeypatch, capsys):
        out_file = tmp_path / "m.asc"
        run_cli(["-o", "encrypt", "-d", "x", "--to", "bob", "--armor",
                 "--output", str(out_file), "--keyring", str(keyring_dir)])
        capsys.readouterr()

        def no_prompt(prompt=""):
            raise AssertionError("inspect must not ask for a passphrase")

        monkeypatch.setattr(cli.getpass, "getpass", no_prompt)
        run_cli(["-o", "inspect", "-f", str(out_file), "--keyring", str(keyring_dir)])
        out = capsys.readouterr().out
        assert "Armored:             yes" in out
        assert "Encrypted:           yes" in out
        assert "Recipient key:" in out


class TestSaveDefaults:
    def test_defaults_persist(self, keyring_dir, tmp_path, capsys):
        run_cli(["-o", "encrypt", "-d", "x", "--to", "bob", "--armor", "--algorithm", "aes192",
                 "--keyring", str(keyring_dir), "--save-defaults"])
        capsys.readouterr()
        # Keyring, algorithm and armor now come from the config file.
        run_cli(["-o", "encrypt", "-d", "y", "--to", "bob"])
        armored = capsys.readouterr().out
        assert armored.startswith("-----BEGIN PGP MESSAGE-----")

        message = tmp_path / "y.asc"
        message.write_text(armored)
        run_cli(["-o", "decrypt", "-f", str(message)])
        assert "Cipher:              AES192" in capsys.readouterr().out

    def test_compression_persists(self, keyring_dir):
        run_cli(["-o", "encrypt", "-d", "x", "--to", "bob", "--armor", "--compress",
                 "--compression", "zlib", "--keyring", str(keyring_dir), "--save-defaults"])
        args = cli._build_parser().parse_args(["-o", "encrypt"])
        cli.apply_config_defaults(args, cli.load_config())
        assert args.compression == "zlib"
        assert args.compress
