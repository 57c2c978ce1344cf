"""
Persona catalogue and address detection.

A speaker addresses a persona by opening with ``hey <name>`` or with the
name itself as the first word, e.g. "Hey Connor, tell me a joke" or
"griffin! you there?". Names match the persona key, its display name and
its aliases, case-insensitively.
"""

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from ..config import PersonaProfile

logger = logging.getLogger("mimic.voice.personas")

_ADDRESS_RE = re.compile(
    r"^\s*(?:hey[\s,]+)?(?P<name>[^\W_]+)(?P<punct>[\s,.!?:;\-]*)(?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL,
)


@dataclass(frozen=True)
class AddressMatch:
    persona_key: str
    remainder: str


class PersonaBook:
    """Keyed, read-only collection of persona profiles."""

    def __init__(self, personas: Mapping[str, PersonaProfile], default: str):
        if not personas:
            raise ValueError("PersonaBook needs at least one persona")
        self._personas = {key.lower(): profile for key, profile in personas.items()}
        default = default.lower()
        if default not in self._personas:
            raise KeyError(f"Unknown default persona: {default}")
        self._default = default

        self._names: dict[str, str] = {}
        for key, profile in self._personas.items():
            for name in (key, profile.name, profile.display_name, *profile.aliases):
                self._names.setdefault(name.lower(), key)

    @property
    def default(self) -> str:
        return self._default

    def keys(self) -> list[str]:
        return list(self._personas)

    def get(self, key: str) -> PersonaProfile:
        return self._personas[key.lower()]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._personas

    def resolve(self, name: str) -> Optional[str]:
        """Map a spoken or configured name to a persona key."""
        return self._names.get(name.lower())

    def match_address(self, text: str) -> Optional[AddressMatch]:
        """Detect a leading persona address in a transcript."""
        m = _ADDRESS_RE.match(text)
        if m is None:
            return None
        key = self.resolve(m.group("name"))
        if key is None:
            return None
        rest = m.group("rest")
        # "connor's ..." is not an address
        if rest and not m.group("punct"):
            return None
        return AddressMatch(persona_key=key, remainder=rest.strip())
