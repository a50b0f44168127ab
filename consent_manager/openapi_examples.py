"""Reusable helpers for enriching FastAPI schemas with realistic examples."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


def build_consent_example(
    *,
    summary: str,
    purposes: List[str],
    data_types: Optional[List[str]] = None,
    expires_at: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Build an OpenAPI example entry for a consent creation request."""
    value: Dict[str, Any] = {
        "data_principal": {"id": "P1", "name": "Asha"},
        "data_fiduciary": {"id": "F1", "name": "Example Retail Pvt Ltd"},
        "purposes": [{"purpose_id": purpose_id} for purpose_id in purposes],
        "data_types": data_types or [],
        "consent_method": "express_click",
    }
    if expires_at:
        value["expires_at"] = expires_at

    example: Dict[str, Any] = {"summary": summary, "value": value}
    if description:
        example["description"] = description

    return example


def build_request_body_examples(examples: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap request examples in OpenAPI-compliant structure."""
    return {
        "requestBody": {
            "content": {
                "application/json": {
                    "examples": examples,
                }
            }
        }
    }


CREATE_CONSENT_EXAMPLES = build_request_body_examples(
    {
        "purchase": build_consent_example(
            summary="Purchase consent without expiry",
            purposes=["buy"],
            data_types=["email", "phone"],
        ),
        "marketing": build_consent_example(
            summary="Time-boxed marketing consent",
            purposes=["marketing"],
            data_types=["email"],
            expires_at="2030-01-01T00:00:00Z",
            description="Expires automatically; validation rejects it afterwards.",
        ),
    }
)

VALIDATE_CONSENT_EXAMPLES = build_request_body_examples(
    {
        "purchase": {
            "summary": "Check purchase consent for email",
            "value": {
                "principal_id": "P1",
                "fiduciary_id": "F1",
                "purpose_id": "buy",
                "data_types": ["email"],
            },
        },
    }
)
