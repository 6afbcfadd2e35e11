"""
Unit tests for the CLI module.

Tests follow the Given/When/Then pattern for clarity.
"""

import json

import pytest

from token_autodetect import detect_wallet_tokens
from token_autodetect.detect_wallet_tokens import (
    SUPPORTED_NETWORKS,
    main,
    validate_network,
    validate_wallet,
)
from token_autodetect.lib import coordinator as coordinator_module
from token_autodetect.lib.models import TokenStandard

from conftest import BAR_TOKEN, FOO_TOKEN, WALLET, FakeAssetDefinitions, FakeReachability


class TestValidateNetwork:
    """Tests for validate_network function."""

    def test_normalizes_network_name_to_lowercase(self):
        """
        Given a network name in mixed case
        When validating it
        Then it should be normalized to lowercase
        """
        # When / Then
        assert validate_network("XDai") == "xdai"

    def test_raises_error_for_unsupported_network(self):
        """
        Given an unsupported network
        When validating it
        Then a ValueError should be raised
        """
        # When / Then
        with pytest.raises(ValueError, match="Unsupported network: unsupported_chain"):
            validate_network("unsupported_chain")

    def test_accepts_all_supported_networks(self):
        """
        Given all supported networks
        When validating each
        Then all should be accepted
        """
        # When
        result = [validate_network(network) for network in SUPPORTED_NETWORKS]

        # Then
        assert result == SUPPORTED_NETWORKS


class TestValidateWallet:
    """Tests for validate_wallet function."""

    def test_returns_checksummed_address(self):
        """
        Given a lowercase wallet address
        When validating it
        Then the checksummed address should be returned
        """
        # When / Then
        assert validate_wallet(WALLET.lower()) == WALLET

    def test_raises_error_for_invalid_address(self):
        """
        Given a malformed wallet address
        When validating it
        Then a ValueError should be raised
        """
        # When / Then
        with pytest.raises(ValueError, match="Invalid wallet address"):
            validate_wallet("0x1234")


class TestMain:
    """Tests for the main entry point."""

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch):
        for key in (
            "TOKEN_AUTODETECT_NETWORK",
            "TOKEN_AUTODETECT_DISABLED",
            "TOKEN_AUTODETECT_TEST_MODE",
        ):
            monkeypatch.delenv(key, raising=False)

    @pytest.fixture
    def offline_stack(self, monkeypatch, fake_client):
        monkeypatch.setattr(detect_wallet_tokens, "ChainClient", lambda *args, **kwargs: fake_client)
        monkeypatch.setattr(coordinator_module, "NetworkReachability", lambda url: FakeReachability(True))
        monkeypatch.setattr(coordinator_module, "AssetDefinitionStore", lambda url: FakeAssetDefinitions())
        return fake_client

    def test_invalid_wallet_exits_with_error(self, capsys):
        """
        Given an invalid wallet address
        When running the CLI
        Then it should exit with status 1 and print the error
        """
        # When
        exit_code = main(["--wallet", "not-a-wallet"])

        # Then
        assert exit_code == 1
        assert "Invalid wallet address" in capsys.readouterr().err

    def test_unsupported_network_exits_with_error(self, capsys):
        """
        Given an unsupported network
        When running the CLI
        Then it should exit with status 1
        """
        # When
        exit_code = main(["--wallet", WALLET, "--network", "solana"])

        # Then
        assert exit_code == 1
        assert "Unsupported network: solana" in capsys.readouterr().err

    def test_detects_imports_and_writes_report(self, offline_stack, tmp_path, capsys):
        """
        Given a wallet that transacted with one token and a token to import
        When running the CLI with a store and output path
        Then both tokens should be saved and written to the report
        """
        # Given
        fake_client = offline_stack
        fake_client.add_contract(FOO_TOKEN, TokenStandard.FUNGIBLE, "Foo", "FOO", decimals=18)
        fake_client.add_contract(BAR_TOKEN, TokenStandard.FUNGIBLE, "Bar", "BAR", decimals=6)
        fake_client.interactions[True] = [FOO_TOKEN]
        store_path = tmp_path / "tokens.json"

        # When
        exit_code = main(
            [
                "--wallet",
                WALLET,
                "--store",
                str(store_path),
                "--import",
                BAR_TOKEN,
                "--output",
                str(tmp_path / "tokens.csv"),
            ]
        )

        # Then
        assert exit_code == 0
        saved = json.loads(store_path.read_text())
        assert sorted(token["symbol"] for token in saved["tokens"]) == ["BAR", "FOO"]

        reports = list(tmp_path.glob("tokens_*.csv"))
        assert len(reports) == 1
        content = reports[0].read_text()
        assert "FOO" in content
        assert "BAR" in content

        err = capsys.readouterr().err
        assert "[main] transacted: 1 candidates, 1 added" in err
        assert f"[main] Import {BAR_TOKEN}: added" in err

    def test_disabled_detection_still_writes_stored_tokens(
        self, offline_stack, monkeypatch, capsys
    ):
        """
        Given auto-detection disabled in the environment
        When running the CLI without an output path
        Then no pass should run and the CSV header go to stdout
        """
        # Given
        monkeypatch.setenv("TOKEN_AUTODETECT_DISABLED", "true")
        offline_stack.interactions[True] = [FOO_TOKEN]

        # When
        exit_code = main(["--wallet", WALLET])

        # Then
        assert exit_code == 0
        assert offline_stack.calls == []
        assert capsys.readouterr().out.startswith("network,contract,name")
