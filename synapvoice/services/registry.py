"""
Credential and profile registry.

Holds the admin PIN, the known profile names and the enrolled subset. All
mutations are synchronous read-modify-write cycles against the injected
key/value store; the single-threaded event loop keeps them from interleaving.
"""

import json
import logging
from typing import List, Optional

from ..clients.state_store import KeyValueStore
from ..config import settings, Settings
from ..models.internal_models import Profile

logger = logging.getLogger(__name__)

PIN_KEY = "synap_owner_password"
PROFILES_KEY = "synap_owners"
ENROLLED_KEY = "synap_enrolled_owners"


class RegistryError(Exception):
    """Base exception for registry errors."""
    pass


class InputValidationError(RegistryError):
    """Raised for a malformed PIN or profile name, before any mutation."""
    pass


class CredentialError(RegistryError):
    """Raised when a PIN does not match the stored one."""
    pass


class CredentialRegistry:
    """Durable PIN and profile records with an always-present default profile."""

    def __init__(self, store: KeyValueStore, config: Optional[Settings] = None):
        config = config or settings
        self.store = store
        self.default_profile = config.default_profile
        self.pin_length = config.pin_length
        self.profile_id_prefix = config.profile_id_prefix

        self._pin: Optional[str] = None
        self._profiles: List[str] = [self.default_profile]
        self._enrolled: List[str] = []
        self.load()

    # -- persistence --------------------------------------------------------

    def _read_list(self, key: str) -> Optional[List[str]]:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable registry record {key}")
            return None
        if not isinstance(value, list):
            logger.warning(f"Discarding registry record {key}: not a list")
            return None
        return [str(item) for item in value]

    def load(self) -> None:
        """Reload PIN, profiles and enrolled names from the store."""
        self._pin = self.store.get(PIN_KEY) or None

        profiles = self._read_list(PROFILES_KEY) or []
        if self.default_profile not in profiles:
            profiles.insert(0, self.default_profile)
        self._profiles = list(dict.fromkeys(profiles))

        enrolled = self._read_list(ENROLLED_KEY) or []
        self._enrolled = [name for name in dict.fromkeys(enrolled) if name in self._profiles]

        logger.debug(f"Registry loaded: {len(self._profiles)} profiles, {len(self._enrolled)} enrolled")

    def persist(self) -> None:
        """Write the in-memory records back to the store."""
        if self._pin is None:
            self.store.delete(PIN_KEY)
        else:
            self.store.set(PIN_KEY, self._pin)
        self.store.set(PROFILES_KEY, json.dumps(self._profiles))
        self.store.set(ENROLLED_KEY, json.dumps(self._enrolled))

    # -- credentials --------------------------------------------------------

    def _validate_pin(self, pin: Optional[str]) -> str:
        if pin is None or len(pin) != self.pin_length or not pin.isascii() or not pin.isdigit():
            raise InputValidationError(f"{self.pin_length} DIGITS REQUIRED")
        return pin

    def has_pin(self) -> bool:
        return self._pin is not None

    def set_pin(self, pin: str) -> None:
        self._pin = self._validate_pin(pin)
        self.persist()
        logger.info("Admin PIN updated")

    def verify_pin(self, pin: str) -> bool:
        return self._pin is not None and pin == self._pin

    def check_gate(self, pin: Optional[str], confirm: Optional[str] = None) -> None:
        """
        Pass the credential gate, creating the PIN on first use.

        With no PIN stored, ``pin`` becomes the PIN once ``confirm`` matches it.
        Otherwise ``pin`` must equal the stored PIN. Nothing changes on failure.

        Raises:
            InputValidationError: Malformed PIN or confirmation mismatch
            CredentialError: Wrong PIN
        """
        self._validate_pin(pin)
        if not self.has_pin():
            if confirm != pin:
                raise InputValidationError("PIN MISMATCH")
            self.set_pin(pin)
            return
        if not self.verify_pin(pin):
            logger.warning("Credential gate rejected an invalid PIN")
            raise CredentialError("INVALID PIN")

    # -- profiles -----------------------------------------------------------

    def profile_id(self, name: str) -> str:
        """Backend user id for a profile name."""
        return f"{self.profile_id_prefix}{name}"

    def list_profiles(self) -> List[str]:
        return list(self._profiles)

    def get_profiles(self) -> List[Profile]:
        return [Profile(name=name, enrolled=name in self._enrolled) for name in self._profiles]

    def add_profile(self, name: str) -> bool:
        """Add a profile; returns False when it already exists."""
        name = (name or "").strip()
        if not name:
            raise InputValidationError("PROFILE NAME REQUIRED")
        if name in self._profiles:
            return False
        self._profiles.append(name)
        self.persist()
        logger.info(f"Added profile {name}")
        return True

    def remove_profile(self, name: str) -> bool:
        """Remove a profile and its enrollment; the default profile stays."""
        if name == self.default_profile:
            return False
        if name not in self._profiles:
            return False
        self._profiles = [p for p in self._profiles if p != name]
        self._enrolled = [p for p in self._enrolled if p != name]
        self.persist()
        logger.info(f"Removed profile {name}")
        return True

    def list_enrolled(self) -> List[str]:
        return list(self._enrolled)

    def mark_enrolled(self, name: str) -> None:
        if name not in self._profiles:
            self._profiles.append(name)
        if name not in self._enrolled:
            self._enrolled.append(name)
        self.persist()
        logger.info(f"Profile {name} marked enrolled")

    def reset_all(self) -> None:
        """Forget the PIN, every non-default profile and all enrollments."""
        self._pin = None
        self._profiles = [self.default_profile]
        self._enrolled = []
        self.store.delete(PIN_KEY)
        self.store.delete(PROFILES_KEY)
        self.store.delete(ENROLLED_KEY)
        logger.info("Registry reset to defaults")
