"""
Tests for the credential and profile registry.
"""

import json

import pytest

from synapvoice.clients.state_store import MemoryStore
from synapvoice.services.registry import (
    ENROLLED_KEY,
    PIN_KEY,
    PROFILES_KEY,
    CredentialError,
    CredentialRegistry,
    InputValidationError
)


class TestCredentialRegistry:
    """Test cases for CredentialRegistry."""

    def test_fresh_registry_has_only_default_profile(self, registry):
        assert registry.list_profiles() == ["owner"]
        assert registry.list_enrolled() == []
        assert not registry.has_pin()

    def test_load_reinserts_missing_default(self, config):
        store = MemoryStore({PROFILES_KEY: json.dumps(["guest"])})
        registry = CredentialRegistry(store, config)

        assert registry.list_profiles() == ["owner", "guest"]

    def test_load_discards_unreadable_records(self, config):
        store = MemoryStore({PROFILES_KEY: "not json", ENROLLED_KEY: json.dumps({"owner": True})})
        registry = CredentialRegistry(store, config)

        assert registry.list_profiles() == ["owner"]
        assert registry.list_enrolled() == []

    def test_load_drops_enrolled_names_without_profile(self, config):
        store = MemoryStore({
            PROFILES_KEY: json.dumps(["owner"]),
            ENROLLED_KEY: json.dumps(["owner", "ghost", "owner"])
        })
        registry = CredentialRegistry(store, config)

        assert registry.list_enrolled() == ["owner"]

    def test_profile_id(self, registry):
        assert registry.profile_id("guest") == "voice_guest"

    class TestPin:
        """PIN handling."""

        @pytest.mark.parametrize("pin", ["123", "12345", "12a4", "", "１２３４"])
        def test_set_pin_rejects_malformed(self, registry, store, pin):
            with pytest.raises(InputValidationError, match="4 DIGITS REQUIRED"):
                registry.set_pin(pin)
            assert not registry.has_pin()
            assert store.get(PIN_KEY) is None

        def test_set_and_verify_pin(self, registry, store):
            registry.set_pin("4321")

            assert registry.has_pin()
            assert registry.verify_pin("4321")
            assert not registry.verify_pin("1234")
            assert store.get(PIN_KEY) == "4321"

        def test_gate_setup_requires_confirmation(self, registry):
            with pytest.raises(InputValidationError, match="PIN MISMATCH"):
                registry.check_gate("1234", "1235")
            assert not registry.has_pin()

            registry.check_gate("1234", "1234")
            assert registry.verify_pin("1234")

        def test_gate_verify_rejects_wrong_pin(self, registry):
            registry.set_pin("1234")

            with pytest.raises(CredentialError, match="INVALID PIN"):
                registry.check_gate("9999")
            registry.check_gate("1234")

        def test_gate_rejects_malformed_before_anything_else(self, registry):
            registry.set_pin("1234")

            with pytest.raises(InputValidationError):
                registry.check_gate(None)

    class TestProfiles:
        """Profile list handling."""

        def test_add_profile_is_idempotent(self, registry, store):
            assert registry.add_profile("guest") is True
            assert registry.add_profile("guest") is False

            assert registry.list_profiles() == ["owner", "guest"]
            assert json.loads(store.get(PROFILES_KEY)) == ["owner", "guest"]

        def test_add_profile_rejects_empty_name(self, registry):
            with pytest.raises(InputValidationError, match="PROFILE NAME REQUIRED"):
                registry.add_profile("   ")
            assert registry.list_profiles() == ["owner"]

        def test_remove_default_profile_changes_nothing(self, registry):
            registry.add_profile("guest")
            registry.mark_enrolled("owner")

            assert registry.remove_profile("owner") is False
            assert registry.list_profiles() == ["owner", "guest"]
            assert registry.list_enrolled() == ["owner"]

        def test_remove_unknown_profile(self, registry):
            assert registry.remove_profile("nobody") is False

        def test_remove_profile_also_unenrolls(self, registry):
            registry.add_profile("guest")
            registry.mark_enrolled("guest")

            assert registry.remove_profile("guest") is True
            assert registry.list_profiles() == ["owner"]
            assert registry.list_enrolled() == []

        def test_get_profiles_reports_enrollment(self, registry):
            registry.add_profile("guest")
            registry.mark_enrolled("guest")

            profiles = {p.name: p.enrolled for p in registry.get_profiles()}
            assert profiles == {"owner": False, "guest": True}

        def test_state_survives_reload(self, store, config):
            registry = CredentialRegistry(store, config)
            registry.set_pin("1234")
            registry.add_profile("guest")
            registry.mark_enrolled("guest")

            reloaded = CredentialRegistry(store, config)
            assert reloaded.verify_pin("1234")
            assert reloaded.list_profiles() == ["owner", "guest"]
            assert reloaded.list_enrolled() == ["guest"]

    def test_reset_all_restores_defaults(self, registry, store):
        registry.set_pin("1234")
        registry.add_profile("guest")
        registry.mark_enrolled("owner")
        registry.mark_enrolled("guest")

        registry.reset_all()

        assert not registry.has_pin()
        assert registry.list_profiles() == ["owner"]
        assert registry.list_enrolled() == []
        assert store.get(PIN_KEY) is None
        assert store.get(PROFILES_KEY) is None
        assert store.get(ENROLLED_KEY) is None
