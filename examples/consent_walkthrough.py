from __future__ import annotations

import argparse
import sys
import time
from typing import Any, Callable, Dict, List

import httpx
from jose import JWTError, jwt


DEFAULT_BASE_URL = "http://localhost:3000"

PRINCIPAL = {"id": "P1", "name": "Asha"}
FIDUCIARY = {"id": "F1", "name": "Example Retail Pvt Ltd"}


def _step(label: str, response: httpx.Response, expected_status: int, check: Callable[[Any], bool]) -> Dict[str, Any]:
    """Summarize one request and whether it behaved as expected."""
    try:
        body = response.json()
    except ValueError:
        body = response.text[:500]
    ok = response.status_code == expected_status and check(body)
    return {"label": label, "status": response.status_code, "ok": ok, "body": body}


def verify_with_published_key(client: httpx.Client, token: str) -> bool:
    """Verify a proof the way an external relying party would."""
    header = jwt.get_unverified_header(token)
    keys = client.get("/public-keys").json()["keys"]
    key = next((k for k in keys if k["kid"] == header.get("kid")), None)
    if key is None:
        return False
    try:
        jwt.decode(token, key["publicKey"], algorithms=[key["alg"]])
    except JWTError:
        return False
    return True


def run_walkthrough(client: httpx.Client) -> List[Dict[str, Any]]:
    """Create, validate, revoke and re-validate one consent."""
    results: List[Dict[str, Any]] = []

    created = client.post(
        "/consents",
        json={
            "data_principal": PRINCIPAL,
            "data_fiduciary": FIDUCIARY,
            "purposes": [{"purpose_id": "buy"}],
            "data_types": ["email", "phone"],
        },
    )
    results.append(_step("create", created, 201, lambda body: body.get("status") == "active"))
    consent = created.json()
    consent_id = consent["consent_id"]

    results.append(
        {
            "label": "verify proof with published key",
            "status": 200,
            "ok": verify_with_published_key(client, consent["proof"]["jws"]),
            "body": {"kid": consent["proof"]["kid"]},
        }
    )

    query = {"principal_id": PRINCIPAL["id"], "fiduciary_id": FIDUCIARY["id"], "purpose_id": "buy"}
    results.append(
        _step(
            "validate email",
            client.post("/consents/validate", json={**query, "data_types": ["email"]}),
            200,
            lambda body: body.get("valid") is True and body.get("consent_id") == consent_id,
        )
    )
    results.append(
        _step(
            "validate email+address",
            client.post("/consents/validate", json={**query, "data_types": ["email", "address"]}),
            200,
            lambda body: body.get("valid") is False,
        )
    )
    results.append(
        _step(
            "fetch",
            client.get(f"/consents/{consent_id}"),
            200,
            lambda body: body.get("consent_id") == consent_id,
        )
    )
    results.append(
        _step(
            "revoke",
            client.post(f"/consents/{consent_id}/revoke", json={"reason": "walkthrough"}),
            200,
            lambda body: body.get("status") == "revoked",
        )
    )
    results.append(
        _step(
            "validate after revoke",
            client.post("/consents/validate", json=query),
            200,
            lambda body: body == {"valid": False, "reason": "no_matching_consent"},
        )
    )
    results.append(
        _step(
            "revoke again",
            client.post(f"/consents/{consent_id}/revoke"),
            400,
            lambda body: body.get("code") == "AlreadyRevokedError",
        )
    )
    return results


def run(base_url: str) -> int:
    print(f"Using consent manager at {base_url}")
    start = time.perf_counter()
    with httpx.Client(base_url=base_url.rstrip("/"), timeout=30.0) as client:
        results = run_walkthrough(client)

    failures = 0
    for result in results:
        status = "OK" if result["ok"] else "FAIL"
        if not result["ok"]:
            failures += 1
        print(f"[{status}] {result['label']} :: status={result['status']}")
        if not result["ok"]:
            print(f"       body={result['body']}")

    print(f"Finished in {(time.perf_counter() - start) * 1000:.2f}ms")
    return failures


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Walk one consent through its lifecycle.")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL, help="Consent manager base URL.")
    return parser.parse_args(argv)


def main(argv: List[str]) -> int:
    args = parse_args(argv)
    try:
        failures = run(args.base_url)
    except httpx.HTTPError as exc:
        print(f"Error: {exc}")
        return 1
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
