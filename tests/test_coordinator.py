"""
Unit tests for the token coordinator.

Tests follow the Given/When/Then pattern for clarity.
"""

import gc
import threading

import pytest

from token_autodetect.lib.config import DetectionConfig
from token_autodetect.lib.coordinator import TokenCoordinator
from token_autodetect.lib.models import IngestAction, TokenRecord, TokenStandard

from conftest import (
    FOO_TOKEN,
    TICKET_TOKEN,
    WALLET,
    FakeAssetDefinitions,
    FakeReachability,
)

TIMEOUT = 5


class Listener:
    """Token list listener recording its calls."""

    def __init__(self):
        self.count = 0
        self.called = threading.Event()
        self._lock = threading.Lock()

    def on_tokens_changed(self):
        with self._lock:
            self.count += 1
        self.called.set()


@pytest.fixture
def asset_definitions():
    return FakeAssetDefinitions()


def make_coordinator(fake_client, store, asset_definitions, config=None, wallet=WALLET, partners=None):
    return TokenCoordinator(
        fake_client,
        store,
        config or DetectionConfig(max_workers=4),
        wallet_provider=lambda: wallet,
        reachability=FakeReachability(True),
        asset_definitions=asset_definitions,
        partner_contracts=partners if partners is not None else {},
    )


class TestAutoDetection:
    """Tests for start_auto_detection."""

    def test_runs_transacted_and_partner_passes(self, fake_client, store, asset_definitions):
        """
        Given a transacted ERC20 token and a curated ERC875 token the wallet holds
        When starting auto-detection
        Then both passes should run and add their token
        """
        # Given
        fake_client.add_contract(FOO_TOKEN, TokenStandard.FUNGIBLE, "Foo", "FOO")
        fake_client.add_contract(
            TICKET_TOKEN, TokenStandard.SEMI_FUNGIBLE, "Tickets", "TKT", balance=["0x01"]
        )
        fake_client.interactions[True] = [FOO_TOKEN]
        partners = {"main": [("TKT", TICKET_TOKEN)]}

        # When
        with make_coordinator(fake_client, store, asset_definitions, partners=partners) as coordinator:
            reports = [future.result(timeout=TIMEOUT) for future in coordinator.start_auto_detection()]

        # Then
        assert sorted(report.kind for report in reports) == ["partner", "transacted"]
        assert store.list_enabled() == {FOO_TOKEN, TICKET_TOKEN}
        assert sorted(a.lower() for a in asset_definitions.fetched) == [FOO_TOKEN, TICKET_TOKEN]

    def test_network_without_curated_list_runs_transacted_only(
        self, fake_client, store, asset_definitions
    ):
        """
        Given no curated list for the network
        When starting auto-detection
        Then only the transacted pass should run
        """
        # When
        with make_coordinator(fake_client, store, asset_definitions) as coordinator:
            futures = coordinator.start_auto_detection()
            reports = [future.result(timeout=TIMEOUT) for future in futures]

        # Then
        assert [report.kind for report in reports] == ["transacted"]

    def test_no_wallet_starts_nothing(self, fake_client, store, asset_definitions):
        """
        Given a session without a wallet
        When starting auto-detection
        Then no pass should run
        """
        # When
        with make_coordinator(fake_client, store, asset_definitions, wallet=None) as coordinator:
            futures = coordinator.start_auto_detection()

        # Then
        assert futures == []
        assert fake_client.calls == []

    def test_asset_definition_change_refreshes_names(self, fake_client, store, asset_definitions):
        """
        Given an unnamed ERC875 token and a started coordinator
        When the contract's asset definition changes
        Then the name should be refreshed and listeners told
        """
        # Given
        fake_client.add_contract(TICKET_TOKEN, TokenStandard.SEMI_FUNGIBLE, "Tickets", "TKT")
        store.add_token(
            TokenRecord.non_fungible(TICKET_TOKEN, "main", "", "TKT", [], TokenStandard.SEMI_FUNGIBLE)
        )
        listener = Listener()
        config = DetectionConfig(auto_fetching_disabled=True)

        with make_coordinator(fake_client, store, asset_definitions, config=config) as coordinator:
            coordinator.add_listener(listener.on_tokens_changed)
            coordinator.start_auto_detection()
            coordinator.start_auto_detection()

            # When
            asset_definitions.announce_change(TICKET_TOKEN)

        # Then
        assert len(asset_definitions.subscribers) == 1
        assert store.get_token(TICKET_TOKEN).name == "Tickets"
        assert listener.count == 1


class TestTokenListChanges:
    """Tests for imports, deletions and custom tokens."""

    def test_imported_token_is_unhidden_and_added(self, fake_client, store, asset_definitions):
        """
        Given a hidden ERC20 contract
        When importing it
        Then it should be added and listeners told
        """
        # Given
        fake_client.add_contract(FOO_TOKEN, TokenStandard.FUNGIBLE, "Foo", "FOO")
        store.add_hidden(FOO_TOKEN)
        listener = Listener()

        with make_coordinator(fake_client, store, asset_definitions) as coordinator:
            coordinator.add_listener(listener.on_tokens_changed)

            # When
            action = coordinator.add_imported_token(FOO_TOKEN).result(timeout=TIMEOUT)
            assert listener.called.wait(TIMEOUT)

        # Then
        assert action is IngestAction.ADDED
        assert store.list_hidden() == set()
        assert store.list_enabled() == {FOO_TOKEN}

    def test_failed_import_leaves_contract_unhidden(self, fake_client, store, asset_definitions):
        """
        Given a hidden contract that cannot be read while offline
        When importing it
        Then it should no longer be hidden so detection can find it later
        """
        # Given
        fake_client.add_contract(FOO_TOKEN, TokenStandard.FUNGIBLE, "Foo", "FOO", fail={"name"})
        store.add_hidden(FOO_TOKEN)
        coordinator = TokenCoordinator(
            fake_client,
            store,
            DetectionConfig(),
            wallet_provider=lambda: WALLET,
            reachability=FakeReachability(False),
            asset_definitions=asset_definitions,
        )

        # When
        with coordinator:
            action = coordinator.add_imported_token(FOO_TOKEN).result(timeout=TIMEOUT)

        # Then
        assert action is IngestAction.IGNORED
        assert store.known_contracts().excluded_for_transacted() == frozenset()

    def test_deleted_token_is_hidden(self, fake_client, store, asset_definitions):
        """
        Given an added token
        When the user deletes it
        Then it should be hidden, removed and listeners told
        """
        # Given
        token = TokenRecord.fungible(FOO_TOKEN, "main", "Foo", "FOO", 18)
        store.add_token(token)
        listener = Listener()

        with make_coordinator(fake_client, store, asset_definitions) as coordinator:
            coordinator.add_listener(listener.on_tokens_changed)

            # When
            coordinator.delete_token(token)

        # Then
        assert store.list_hidden() == {FOO_TOKEN}
        assert store.list_enabled() == set()
        assert listener.count == 1

    def test_custom_token_is_added(self, fake_client, store, asset_definitions):
        """
        Given a custom token
        When the user adds it
        Then it should be in the token list and listeners told
        """
        # Given
        listener = Listener()

        with make_coordinator(fake_client, store, asset_definitions) as coordinator:
            coordinator.add_listener(listener.on_tokens_changed)

            # When
            coordinator.add_custom_token(TokenRecord.fungible(FOO_TOKEN, "main", "Foo", "FOO", 18))

        # Then
        assert store.list_enabled() == {FOO_TOKEN}
        assert listener.count == 1


class TestListeners:
    """Tests for listener registration."""

    def test_collected_listener_is_dropped(self, fake_client, store, asset_definitions):
        """
        Given a listener whose owner is garbage collected
        When the token list changes
        Then the listener should be dropped without error
        """
        # Given
        with make_coordinator(fake_client, store, asset_definitions) as coordinator:
            listener = Listener()
            coordinator.add_listener(listener.on_tokens_changed)
            del listener
            gc.collect()

            # When
            coordinator.tokens_did_change()

            # Then
            assert coordinator._listeners == []

    def test_removed_listener_is_not_called(self, fake_client, store, asset_definitions):
        """
        Given two listeners, one of them removed
        When the token list changes
        Then only the remaining one should be called
        """
        # Given
        kept, removed = Listener(), Listener()

        with make_coordinator(fake_client, store, asset_definitions) as coordinator:
            coordinator.add_listener(kept.on_tokens_changed)
            coordinator.add_listener(removed.on_tokens_changed)
            coordinator.remove_listener(removed.on_tokens_changed)

            # When
            coordinator.tokens_did_change()

        # Then
        assert (kept.count, removed.count) == (1, 0)
