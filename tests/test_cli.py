"""Tests for the atrest CLI."""

import io
import json

import pytest

from atrest.cli import seal_cli
from atrest.core.cipher_engine import CipherEngine
from atrest.core.key_resolver import KeyEncoding, KeyMaterialResolver


@pytest.fixture(autouse=True)
def no_root_logging(monkeypatch):
    """Keep the CLI from reconfiguring the test run's root logger."""
    monkeypatch.setattr(seal_cli, "setup_logging", lambda **kwargs: None)


@pytest.fixture
def key_env(monkeypatch, hex_key):
    monkeypatch.setenv("ENCRYPTION_KEY", hex_key)
    return hex_key


class TestKeygen:
    """atrest keygen"""

    def test_hex(self, capsys):
        assert seal_cli.main(["keygen"]) == 0
        key = capsys.readouterr().out.strip()
        assert KeyMaterialResolver().resolve_with_source(key).encoding == KeyEncoding.HEX

    def test_base64(self, capsys):
        assert seal_cli.main(["keygen", "--format", "base64"]) == 0
        key = capsys.readouterr().out.strip()
        assert KeyMaterialResolver().resolve_with_source(key).encoding == KeyEncoding.BASE64


class TestEncrypt:
    """atrest encrypt"""

    def test_argument(self, capsys, key_env):
        assert seal_cli.main(["encrypt", "db-password"]) == 0
        envelope = json.loads(capsys.readouterr().out)
        assert CipherEngine(key_env).decrypt(**envelope) == "db-password"

    def test_stdin(self, capsys, monkeypatch, key_env):
        monkeypatch.setattr("sys.stdin", io.StringIO("from stdin"))
        assert seal_cli.main(["encrypt"]) == 0
        envelope = json.loads(capsys.readouterr().out)
        assert CipherEngine(key_env).decrypt(**envelope) == "from stdin"

    def test_missing_key(self, capsys):
        assert seal_cli.main(["encrypt", "text"]) == seal_cli.EXIT_CONFIG_ERROR
        assert "No encryption key material configured" in capsys.readouterr().err


class TestDecrypt:
    """atrest decrypt"""

    def test_envelope_argument(self, capsys, key_env):
        envelope = CipherEngine(key_env).encrypt("round trip")
        assert seal_cli.main(["decrypt", json.dumps(envelope.to_dict())]) == 0
        assert capsys.readouterr().out == "round trip"

    def test_envelope_stdin(self, capsys, monkeypatch, key_env):
        envelope = CipherEngine(key_env).encrypt("piped")
        monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(envelope.to_dict())))
        assert seal_cli.main(["decrypt"]) == 0
        assert capsys.readouterr().out == "piped"

    def test_fields(self, capsys, key_env):
        envelope = CipherEngine(key_env).encrypt("fields")
        argv = [
            "decrypt",
            "--ciphertext", envelope.ciphertext,
            "--tag", envelope.tag,
            "--nonce", envelope.nonce,
        ]
        assert seal_cli.main(argv) == 0
        assert capsys.readouterr().out == "fields"

    def test_tampered(self, capsys, key_env):
        envelope = CipherEngine(key_env).encrypt("tampered").to_dict()
        envelope["tag"] = "00" * 16
        assert seal_cli.main(["decrypt", json.dumps(envelope)]) == seal_cli.EXIT_CRYPTO_FAILURE
        assert "Decryption failed" in capsys.readouterr().err

    def test_wrong_key(self, capsys, monkeypatch, key_env):
        envelope = CipherEngine(key_env).encrypt("other key")
        monkeypatch.setenv("ENCRYPTION_KEY", "a different key")
        assert seal_cli.main(["decrypt", json.dumps(envelope.to_dict())]) == 1

    def test_incomplete_envelope(self, key_env):
        assert seal_cli.main(["decrypt", '{"ciphertext": ""}']) == seal_cli.EXIT_CRYPTO_FAILURE

    def test_invalid_json(self, capsys, key_env):
        assert seal_cli.main(["decrypt", "not json"]) == seal_cli.EXIT_INVALID_ARGS

    def test_partial_fields(self, key_env):
        assert seal_cli.main(["decrypt", "--tag", "00" * 16]) == seal_cli.EXIT_INVALID_ARGS

    def test_missing_key(self, hex_key):
        envelope = CipherEngine(hex_key).encrypt("no key")
        assert seal_cli.main(["decrypt", json.dumps(envelope.to_dict())]) == seal_cli.EXIT_CONFIG_ERROR


class TestMain:
    """Top-level behaviour."""

    def test_no_command(self, capsys):
        assert seal_cli.main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()


class TestInvalidConfiguration:
    """Bad settings exit with the configuration error code."""

    @pytest.mark.parametrize("name,value", [
        ("PASSWORD_ITERATIONS", "many"),
        ("LOG_LEVEL", "LOUD"),
        ("LOG_JSON", "sometimes"),
    ])
    def test_invalid_setting(self, monkeypatch, capsys, key_env, name, value):
        monkeypatch.setenv(name, value)
        assert seal_cli.main(["keygen"]) == seal_cli.EXIT_CONFIG_ERROR
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.startswith("Error:")
        assert name.lower() in captured.err.lower()

    def test_dev_mode_in_production(self, monkeypatch, capsys):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("DEV_MODE", "true")
        assert seal_cli.main(["encrypt", "x"]) == seal_cli.EXIT_CONFIG_ERROR
        assert "DEV_MODE" in capsys.readouterr().err

    def test_logging_setup_failure(self, monkeypatch, capsys, key_env):
        def fail(**kwargs):
            raise ValueError("Unknown level: 'LOUD'")

        monkeypatch.setattr(seal_cli, "setup_logging", fail)
        assert seal_cli.main(["keygen"]) == seal_cli.EXIT_CONFIG_ERROR
        assert "Unknown level" in capsys.readouterr().err

    def test_lowercase_log_level_accepted(self, monkeypatch, capsys, key_env):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert seal_cli.main(["keygen"]) == seal_cli.EXIT_OK
