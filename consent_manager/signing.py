"""Signing authority for consent artifact proofs.

One RSA keypair is held for the lifetime of the process. Artifacts are signed
as compact JWS tokens (RS256) whose ``kid`` header names the held key, so
relying parties can fetch the matching public key from ``/public-keys``.
"""
from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import JWTError, jwt

from .config import Settings
from .errors import SignatureError
from .models import ConsentArtifact, Proof, PublicKey

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "RS256"
KEY_ID_PREFIX = "consent-key"


def generate_key_id() -> str:
    """Key identifier derived from the current time in milliseconds."""
    return f"{KEY_ID_PREFIX}-{int(time.time() * 1000)}"


class SigningAuthority:
    """Signs payloads with the held private key and verifies tokens against its public key."""

    def __init__(self, private_key: rsa.RSAPrivateKey, key_id: str, signer_name: str = "demo-consent-manager"):
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise ValueError(f"{SIGNING_ALGORITHM} signing requires an RSA private key")

        self.key_id = key_id
        self.signer_name = signer_name
        self.algorithm = SIGNING_ALGORITHM
        self._private_key_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()
        self._public_key_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()

    @classmethod
    def generate(
        cls,
        key_size: int = 2048,
        key_id: Optional[str] = None,
        signer_name: str = "demo-consent-manager",
    ) -> "SigningAuthority":
        """Create an authority around a freshly generated RSA keypair."""
        logger.info("Generating RSA %d-bit signing key...", key_size)
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=key_size,
            backend=default_backend(),
        )
        return cls(private_key, key_id or generate_key_id(), signer_name)

    @classmethod
    def from_pem_file(
        cls,
        key_file: Path,
        key_id: Optional[str] = None,
        signer_name: str = "demo-consent-manager",
    ) -> "SigningAuthority":
        """Create an authority from an unencrypted PEM private key on disk."""
        with open(key_file, "rb") as f:
            key_data = f.read()
        private_key = serialization.load_pem_private_key(key_data, password=None, backend=default_backend())
        logger.info("Loaded signing key from %s", key_file)
        return cls(private_key, key_id or generate_key_id(), signer_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningAuthority":
        if settings.signing_private_key_path:
            return cls.from_pem_file(
                Path(settings.signing_private_key_path),
                key_id=settings.signing_key_id,
                signer_name=settings.signer_name,
            )
        return cls.generate(
            key_size=settings.signing_key_size,
            key_id=settings.signing_key_id,
            signer_name=settings.signer_name,
        )

    # ------------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------------

    def sign(self, payload: Dict[str, Any]) -> str:
        """
        Produce a compact signed token over ``payload``.

        ``iss``, ``iat`` and a random ``jti`` are added to the claims, so two
        signings of the same payload yield different tokens.
        """
        claims = dict(payload)
        claims.update(
            {
                "iss": self.signer_name,
                "iat": int(time.time()),
                "jti": secrets.token_hex(16),
            }
        )
        return jwt.encode(claims, self._private_key_pem, algorithm=self.algorithm, headers={"kid": self.key_id})

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Validate ``token`` against the held public key.

        Returns:
            The verified claims

        Raises:
            SignatureError: If the token is malformed, names another key or
                algorithm, or its signature does not match
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise SignatureError("Malformed signature token", {"reason": str(exc)}) from exc

        if header.get("alg") != self.algorithm:
            raise SignatureError(
                "Unsupported signing algorithm",
                {"expected": self.algorithm, "received": header.get("alg")},
            )
        if header.get("kid") != self.key_id:
            raise SignatureError(
                "Unknown signing key",
                {"expected": self.key_id, "received": header.get("kid")},
            )

        try:
            return jwt.decode(token, self._public_key_pem, algorithms=[self.algorithm], issuer=self.signer_name)
        except JWTError as exc:
            raise SignatureError("Signature verification failed", {"reason": str(exc)}) from exc

    # ------------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------------

    def sign_artifact(self, artifact: ConsentArtifact) -> Proof:
        """Sign the artifact's current content (excluding any existing proof)."""
        token = self.sign({"artifact": artifact.signing_payload()})
        return Proof(
            signed_by=self.signer_name,
            signing_algorithm=self.algorithm,
            kid=self.key_id,
            jws=token,
        )

    def verify_artifact(self, artifact: ConsentArtifact) -> Dict[str, Any]:
        """
        Verify an artifact's proof and that it still covers the artifact's content.

        Raises:
            SignatureError: If the proof is missing, invalid, or was issued
                over different content
        """
        if artifact.proof is None:
            raise SignatureError("Artifact carries no proof", {"consent_id": artifact.consent_id})

        claims = self.verify(artifact.proof.jws)
        if claims.get("artifact") != artifact.signing_payload():
            raise SignatureError(
                "Signed payload does not match artifact content",
                {"consent_id": artifact.consent_id},
            )
        return claims

    def public_key_info(self) -> PublicKey:
        """Public verification material for external relying parties."""
        return PublicKey(kid=self.key_id, alg=self.algorithm, public_key=self._public_key_pem)
