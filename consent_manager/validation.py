"""Real-time consent validation.

``ValidationEngine.validate`` answers whether a principal's consent for a
fiduciary, purpose and optional set of data types is currently valid. It scans
candidate artifacts, applies every predicate, and only grants on an artifact
whose proof still verifies against the held key. A candidate with a broken
signature is logged and skipped; it never aborts the scan.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from .errors import SignatureError, require_fields
from .models import ConsentArtifact, Verdict, ensure_utc, same_id, utcnow
from .signing import SigningAuthority
from .store import ConsentStore

logger = logging.getLogger(__name__)

NO_MATCHING_CONSENT = "no_matching_consent"


def mismatch_reason(
    artifact: ConsentArtifact,
    principal_id: Any,
    fiduciary_id: Any,
    purpose_id: Any,
    data_types: Optional[List[str]],
    now: datetime,
) -> Optional[str]:
    """
    Return why ``artifact`` cannot satisfy the query, or None if it can.

    Predicates are checked in a fixed order: status, expiry, principal,
    fiduciary, purpose, data types.
    """
    if not artifact.is_active:
        return "inactive"
    if artifact.is_expired(now):
        return "expired"
    if not same_id(artifact.data_principal.id, principal_id):
        return "principal_mismatch"
    if not same_id(artifact.data_fiduciary.id, fiduciary_id):
        return "fiduciary_mismatch"
    if not artifact.covers_purpose(purpose_id):
        return "purpose_mismatch"
    if not artifact.covers_data_types(data_types):
        return "data_types_not_covered"
    return None


class ValidationEngine:
    """Read-only matcher over the consent store."""

    def __init__(
        self,
        signer: SigningAuthority,
        store: ConsentStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.signer = signer
        self.store = store
        self.clock = clock

    async def validate(
        self,
        principal_id: Any,
        fiduciary_id: Any,
        purpose_id: Any,
        data_types: Optional[List[str]] = None,
    ) -> Verdict:
        """
        Find the first active, matching, signature-valid consent.

        Raises:
            ValidationError: If principal_id, fiduciary_id or purpose_id is missing
        """
        require_fields(
            {
                "principal_id": principal_id,
                "fiduciary_id": fiduciary_id,
                "purpose_id": purpose_id,
            },
            ["principal_id", "fiduciary_id", "purpose_id"],
        )

        now = ensure_utc(self.clock())
        candidates = await self.store.candidates(principal_id, fiduciary_id)

        for artifact in candidates:
            reason = mismatch_reason(artifact, principal_id, fiduciary_id, purpose_id, data_types, now)
            if reason is not None:
                logger.debug("Skipping consent %s: %s", artifact.consent_id, reason)
                continue

            try:
                self.signer.verify_artifact(artifact)
            except SignatureError as exc:
                logger.warning("Invalid signature for consent: %s %s", artifact.consent_id, exc.message)
                continue

            logger.info(
                "Consent valid: consent_id=%s principal=%s fiduciary=%s purpose=%s",
                artifact.consent_id,
                principal_id,
                fiduciary_id,
                purpose_id,
            )
            return Verdict.granted(artifact)

        logger.info(
            "No matching consent: principal=%s fiduciary=%s purpose=%s scanned=%d",
            principal_id,
            fiduciary_id,
            purpose_id,
            len(candidates),
        )
        return Verdict.denied(NO_MATCHING_CONSENT)
