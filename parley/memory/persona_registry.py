"""Shared list of personas.

The registry is seeded once from a JSON file at startup and afterwards
changed only by admin commands.  Runtime edits live in memory only: the
seed file is never written back, so a restart returns to its contents.
"""

from __future__ import annotations

import json
import threading
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from ..models.personality import Personality
from ..prompts.system import DEFAULT_PERSONA_NAME
from ..utils.error_handler import PersonaNotFound, PersonaSeedError

_SEED_ADAPTER = TypeAdapter(List[Personality])


class PersonaRegistry:
    """Ordered, name-unique collection of :class:`Personality` records.

    Names are matched exactly (case-sensitive).  The registry has its own
    lock, independent of the session store; callers copy what they need
    out of it rather than holding both locks at once.
    """

    def __init__(self, personas: Iterable[Personality] | None = None) -> None:
        self._lock = threading.Lock()
        self._personas: list[Personality] = []
        for persona in personas or []:
            self._upsert_locked(persona.name, persona.description, persona.prompt, persona.tokens)

    # ------------------------------------------------------------------
    # Reads

    def list(self) -> list[Personality]:
        """Return a snapshot copy of all personas in insertion order."""
        with self._lock:
            return [persona.model_copy() for persona in self._personas]

    def names(self) -> list[str]:
        with self._lock:
            return [persona.name for persona in self._personas]

    def get(self, name: str) -> Optional[Personality]:
        with self._lock:
            index = self._index_of(name)
            return None if index is None else self._personas[index].model_copy()

    def resolve(self, name: str) -> Personality:
        """Return persona ``name``.

        The reserved default name always resolves, even while the registry
        is empty or after it has been removed.

        Raises
        ------
        PersonaNotFound
            If ``name`` is unknown and not the reserved default.
        """
        persona = self.get(name)
        if persona is not None:
            return persona
        if name == DEFAULT_PERSONA_NAME:
            return Personality.default()
        raise PersonaNotFound(name)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return isinstance(name, str) and self._index_of(name) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._personas)

    # ------------------------------------------------------------------
    # Writes

    def upsert(
        self,
        name: str,
        description: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> Personality:
        """Update persona ``name`` in place, or append it if it is new.

        Fields passed as ``None`` keep their current value; a new persona
        starts with an empty description and prompt.
        """
        with self._lock:
            persona = self._upsert_locked(name, description, prompt)
        logger.info("Persona {!r} saved", name)
        return persona.model_copy()

    def remove(self, name: str) -> bool:
        """Remove persona ``name``.  Returns False if it was not present."""
        with self._lock:
            index = self._index_of(name)
            if index is None:
                return False
            del self._personas[index]
        logger.info("Persona {!r} removed", name)
        return True

    # ------------------------------------------------------------------
    # Seeding

    @classmethod
    def from_seed_file(cls, path: str | Path) -> "PersonaRegistry":
        """Build a registry from a JSON array of persona records.

        A missing file is not an error: the registry then holds just the
        default persona.  A file that exists but cannot be parsed raises
        :class:`PersonaSeedError`.
        """
        registry = cls()
        seed_path = Path(path)
        if not seed_path.is_file():
            logger.warning("Persona seed file {} not found; using the default persona only", seed_path)
            registry.upsert(**_default_fields())
            return registry

        try:
            with seed_path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
            personas = _SEED_ADAPTER.validate_python(payload)
        except (OSError, ValueError, ValidationError) as exc:
            raise PersonaSeedError(f"Failed to load personas from {seed_path}: {exc}") from exc

        with registry._lock:
            for persona in personas:
                registry._upsert_locked(persona.name, persona.description, persona.prompt, persona.tokens)
            if registry._index_of(DEFAULT_PERSONA_NAME) is None:
                default = Personality.default()
                registry._personas.insert(0, default)
        logger.info("Loaded {} personas from {}", len(registry), seed_path)
        return registry

    # ------------------------------------------------------------------
    # Helpers (lock must be held)

    def _index_of(self, name: str) -> Optional[int]:
        for index, persona in enumerate(self._personas):
            if persona.name == name:
                return index
        return None

    def _upsert_locked(
        self,
        name: str,
        description: Optional[str],
        prompt: Optional[str],
        tokens: Optional[int] = None,
    ) -> Personality:
        index = self._index_of(name)
        if index is None:
            persona = Personality(
                name=name,
                description=description or "",
                prompt=prompt or "",
                tokens=tokens,
            )
            self._personas.append(persona)
            return persona

        existing = self._personas[index]
        new_prompt = existing.prompt if prompt is None else prompt
        persona = Personality(
            name=name,
            description=existing.description if description is None else description,
            prompt=new_prompt,
            tokens=existing.tokens if prompt is None else tokens,
        )
        self._personas[index] = persona
        return persona


def _default_fields() -> dict[str, str]:
    default = Personality.default()
    return {"name": default.name, "description": default.description, "prompt": default.prompt}


@lru_cache()
def get_persona_registry() -> PersonaRegistry:
    """Return the process-wide registry, seeded from ``PERSONA_SEED_FILE``."""
    from ..config.app_config import get_app_config

    return PersonaRegistry.from_seed_file(get_app_config().persona_seed_file)
