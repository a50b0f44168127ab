"""Pydantic models for consent artifacts, verdicts and API payloads."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
import json
import uuid

from pydantic import BaseModel, Field, field_validator


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Interpret naive timestamps as UTC and normalize aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def same_id(left: Any, right: Any) -> bool:
    """Strict identifier equality: ``1``, ``True`` and ``"1"`` are all distinct."""
    return type(left) is type(right) and left == right


def index_key(value: Any) -> str:
    """
    Text form of an opaque identifier for indexed lookups.

    Strings are kept as-is; other JSON values are serialized with sorted keys,
    so identifiers that are ``same_id`` always share a key.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True)


class ConsentStatus(str, Enum):
    """Consent artifact status values."""
    ACTIVE = "active"
    REVOKED = "revoked"


class Party(BaseModel):
    """Data principal or data fiduciary identity, stored verbatim."""
    id: Any

    @field_validator("id")
    @classmethod
    def _id_present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("id must not be null")
        return value

    class Config:
        extra = "allow"


class Purpose(BaseModel):
    """A processing purpose referenced by ``purpose_id``."""
    purpose_id: Any

    @field_validator("purpose_id")
    @classmethod
    def _purpose_id_present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("purpose_id must not be null")
        return value

    class Config:
        extra = "allow"


class Proof(BaseModel):
    """Signature envelope binding an artifact to the issuing key."""
    signed_by: str
    signing_algorithm: str
    kid: str
    jws: str


class ConsentArtifact(BaseModel):
    """A signed record of a principal's consent to a fiduciary."""
    consent_id: str
    version: str
    data_principal: Party
    data_fiduciary: Party
    purposes: List[Purpose]
    data_types: List[str] = Field(default_factory=list)
    consent_method: str
    granted_at: datetime
    starts_at: datetime
    expires_at: Optional[datetime] = None
    status: ConsentStatus = ConsentStatus.ACTIVE
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    proof: Optional[Proof] = None

    @field_validator("granted_at", "starts_at", "expires_at", "revoked_at")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @property
    def is_active(self) -> bool:
        return self.status == ConsentStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        """An artifact without ``expires_at`` never expires."""
        return self.expires_at is not None and self.expires_at < now

    def covers_purpose(self, purpose_id: Any) -> bool:
        return any(same_id(purpose.purpose_id, purpose_id) for purpose in self.purposes)

    def covers_data_types(self, data_types: Optional[Iterable[str]]) -> bool:
        """Exact set containment; an empty or absent request always passes."""
        requested = set(data_types or ())
        if not requested:
            return True
        return requested.issubset(self.data_types)

    def to_document(self) -> Dict[str, Any]:
        """
        Serialize to the persisted/exported JSON shape.

        ``revoked_at`` and ``revocation_reason`` only appear once the artifact
        has been revoked; ``expires_at`` is always present (null when unset).
        """
        document = self.model_dump(mode="json")
        for field_name in ("revoked_at", "revocation_reason"):
            if document.get(field_name) is None:
                document.pop(field_name, None)
        if document.get("proof") is None:
            document.pop("proof", None)
        return document

    def signing_payload(self) -> Dict[str, Any]:
        """The document that gets signed: everything except the proof itself."""
        document = self.to_document()
        document.pop("proof", None)
        return document


class VerdictProof(BaseModel):
    """Proof reference returned with a positive verdict."""
    kid: str
    jws: str


class Verdict(BaseModel):
    """Result of a real-time validation query."""
    valid: bool
    consent_id: Optional[str] = None
    status: Optional[ConsentStatus] = None
    granted_at: Optional[datetime] = None
    proof: Optional[VerdictProof] = None
    reason: Optional[str] = None

    @classmethod
    def granted(cls, artifact: ConsentArtifact) -> "Verdict":
        return cls(
            valid=True,
            consent_id=artifact.consent_id,
            status=artifact.status,
            granted_at=artifact.granted_at,
            proof=VerdictProof(kid=artifact.proof.kid, jws=artifact.proof.jws),
        )

    @classmethod
    def denied(cls, reason: str) -> "Verdict":
        return cls(valid=False, reason=reason)


# ============================================================================
# Request/Response Models
# ============================================================================

class ConsentCreateRequest(BaseModel):
    """Consent creation request. Required fields are checked by the lifecycle manager."""
    data_principal: Optional[Dict[str, Any]] = None
    data_fiduciary: Optional[Dict[str, Any]] = None
    purposes: Optional[List[Dict[str, Any]]] = None
    data_types: Optional[List[str]] = None
    consent_method: Optional[str] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None


class ValidateRequest(BaseModel):
    """Real-time consent validation request."""
    principal_id: Optional[Any] = None
    fiduciary_id: Optional[Any] = None
    purpose_id: Optional[Any] = None
    data_types: Optional[List[str]] = None


class RevokeRequest(BaseModel):
    """Revocation request."""
    reason: Optional[str] = None


class PublicKey(BaseModel):
    """Public verification material for one signing key, serialized as ``publicKey``."""
    kid: str
    alg: str
    use: str = "sig"
    public_key: str = Field(alias="publicKey")

    class Config:
        populate_by_name = True


class PublicKeySet(BaseModel):
    """Public keys for external relying parties."""
    keys: List[PublicKey]
