"""Consent lifecycle: create, fetch and revoke signed consent artifacts."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .config import Settings, settings as default_settings
from .errors import AlreadyRevokedError, NotFoundError, ValidationError, require_fields
from .models import ConsentArtifact, ConsentStatus, Party, Purpose, ensure_utc, new_id, utcnow
from .signing import SigningAuthority
from .store import ConsentStore

logger = logging.getLogger(__name__)


class ConsentLifecycleManager:
    """
    The only writer of consent artifacts.

    Every create and revoke signs the artifact's full current state and then
    writes it to the store once. Writes are serialized so that revoke's
    read-modify-write cannot interleave with another write.
    """

    def __init__(
        self,
        signer: SigningAuthority,
        store: ConsentStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.signer = signer
        self.store = store
        self.settings = settings or default_settings
        self.clock = clock
        self._write_lock = asyncio.Lock()

    def _new_consent_id(self) -> str:
        return f"{self.settings.consent_id_prefix}{new_id()}"

    async def create(
        self,
        data_principal: Optional[Dict[str, Any]],
        data_fiduciary: Optional[Dict[str, Any]],
        purposes: Optional[List[Dict[str, Any]]],
        data_types: Optional[List[str]] = None,
        consent_method: Optional[str] = None,
        starts_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConsentArtifact:
        """
        Issue a new signed consent artifact.

        Args:
            data_principal: Identity record of the principal (must carry ``id``)
            data_fiduciary: Identity record of the fiduciary (must carry ``id``)
            purposes: Non-empty list of purpose records (each with ``purpose_id``)
            data_types: Data categories covered by the consent
            consent_method: How consent was obtained
            starts_at: Start of validity, defaults to the grant time
            expires_at: End of validity, None for no expiry
            metadata: Free-form map passed through unchanged

        Returns:
            The stored artifact including its proof

        Raises:
            ValidationError: If principal, fiduciary or purposes are missing or malformed
        """
        require_fields(
            {
                "data_principal": data_principal,
                "data_fiduciary": data_fiduciary,
                "purposes": purposes,
            },
            ["data_principal", "data_fiduciary", "purposes"],
        )

        try:
            principal = Party.model_validate(data_principal)
            fiduciary = Party.model_validate(data_fiduciary)
            purpose_list = [Purpose.model_validate(purpose) for purpose in purposes]
        except PydanticValidationError as exc:
            raise ValidationError(
                "data_principal and data_fiduciary require a non-null id; purposes require a non-null purpose_id",
                {"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

        granted_at = ensure_utc(self.clock())
        artifact = ConsentArtifact(
            consent_id=self._new_consent_id(),
            version=self.settings.artifact_version,
            data_principal=principal,
            data_fiduciary=fiduciary,
            purposes=purpose_list,
            data_types=list(data_types or []),
            consent_method=consent_method or self.settings.default_consent_method,
            granted_at=granted_at,
            starts_at=ensure_utc(starts_at) or granted_at,
            expires_at=ensure_utc(expires_at),
            status=ConsentStatus.ACTIVE,
            metadata=dict(metadata or {}),
        )

        async with self._write_lock:
            artifact = artifact.model_copy(update={"proof": self.signer.sign_artifact(artifact)})
            await self.store.put(artifact.consent_id, artifact)

        logger.info(
            "Consent created: consent_id=%s principal=%s fiduciary=%s purposes=%s",
            artifact.consent_id,
            principal.id,
            fiduciary.id,
            ",".join(str(purpose.purpose_id) for purpose in purpose_list),
        )
        return artifact

    async def get(self, consent_id: str) -> ConsentArtifact:
        """
        Fetch a stored artifact.

        Raises:
            NotFoundError: If the id is unknown
        """
        artifact = await self.store.get(consent_id)
        if artifact is None:
            raise NotFoundError("not found", {"consent_id": consent_id})
        return artifact

    async def revoke(self, consent_id: str, reason: Optional[str] = None) -> ConsentArtifact:
        """
        Revoke an active artifact and re-sign it.

        Raises:
            NotFoundError: If the id is unknown
            AlreadyRevokedError: If the artifact was revoked before
        """
        async with self._write_lock:
            current = await self.get(consent_id)
            if current.status == ConsentStatus.REVOKED:
                raise AlreadyRevokedError(
                    "already revoked",
                    {
                        "consent_id": consent_id,
                        "revoked_at": current.revoked_at.isoformat() if current.revoked_at else None,
                    },
                )

            revoked = current.model_copy(
                update={
                    "status": ConsentStatus.REVOKED,
                    "revoked_at": ensure_utc(self.clock()),
                    "revocation_reason": reason or self.settings.default_revocation_reason,
                    "proof": None,
                }
            )
            revoked = revoked.model_copy(update={"proof": self.signer.sign_artifact(revoked)})
            await self.store.update(consent_id, revoked)

        logger.info("Consent revoked: consent_id=%s reason=%s", consent_id, revoked.revocation_reason)
        return revoked
