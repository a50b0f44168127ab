"""Consent manager: issue, store, validate and revoke signed consent artifacts."""

from .models import (  # noqa: F401
    ConsentArtifact,
    ConsentStatus,
    Party,
    Proof,
    Purpose,
    Verdict,
    new_id,
    utcnow,
)
from .errors import (  # noqa: F401
    ConsentManagerError,
    ValidationError,
    NotFoundError,
    AlreadyRevokedError,
    SignatureError,
    create_error_response,
    require_fields,
)
from .signing import SigningAuthority  # noqa: F401
from .store import ConsentStore, InMemoryConsentStore  # noqa: F401
from .lifecycle import ConsentLifecycleManager  # noqa: F401
from .validation import ValidationEngine, NO_MATCHING_CONSENT  # noqa: F401
from .logging_config import setup_logging, log_request, log_response, log_error  # noqa: F401
