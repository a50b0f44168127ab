"""Consent store contract and the transient in-memory implementation."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .errors import NotFoundError
from .models import ConsentArtifact


class ConsentStore(ABC):
    """
    Keyed persistence for consent artifacts.

    The lifecycle manager is the only writer. Each write replaces a whole
    artifact; there are no transactional guarantees beyond that.
    """

    @abstractmethod
    async def put(self, consent_id: str, artifact: ConsentArtifact) -> None:
        """Persist a new artifact. Ids are never reused."""

    @abstractmethod
    async def get(self, consent_id: str) -> Optional[ConsentArtifact]:
        """Fetch an artifact, or None when the id is unknown."""

    @abstractmethod
    async def values(self) -> List[ConsentArtifact]:
        """All stored artifacts, in insertion order."""

    @abstractmethod
    async def update(self, consent_id: str, artifact: ConsentArtifact) -> None:
        """Overwrite an existing artifact in place."""

    async def candidates(self, principal_id: Any, fiduciary_id: Any) -> List[ConsentArtifact]:
        """
        Artifacts that may match a validation query.

        Stores with a secondary index may narrow the result; callers must
        still apply every predicate themselves.
        """
        return await self.values()

    async def count(self) -> int:
        return len(await self.values())


class InMemoryConsentStore(ConsentStore):
    """Process-local store backed by a dict. Contents are lost on restart."""

    def __init__(self) -> None:
        self._artifacts: Dict[str, ConsentArtifact] = {}

    async def put(self, consent_id: str, artifact: ConsentArtifact) -> None:
        if consent_id in self._artifacts:
            raise ValueError(f"Consent id already stored: {consent_id}")
        self._artifacts[consent_id] = artifact.model_copy(deep=True)

    async def get(self, consent_id: str) -> Optional[ConsentArtifact]:
        artifact = self._artifacts.get(consent_id)
        return artifact.model_copy(deep=True) if artifact is not None else None

    async def values(self) -> List[ConsentArtifact]:
        return [artifact.model_copy(deep=True) for artifact in self._artifacts.values()]

    async def update(self, consent_id: str, artifact: ConsentArtifact) -> None:
        if consent_id not in self._artifacts:
            raise NotFoundError("not found", {"consent_id": consent_id})
        self._artifacts[consent_id] = artifact.model_copy(deep=True)

    async def count(self) -> int:
        return len(self._artifacts)
