"""
Tests for the validation engine.

Coverage:
- Status, expiry, principal, fiduciary, purpose and data-type predicates
- Revocation excluding a consent from validation
- Tampered artifacts failing signature checks without aborting the scan
"""
import logging
from datetime import timedelta
from unittest.mock import patch

import pytest

from consent_manager.errors import ValidationError
from consent_manager.validation import NO_MATCHING_CONSENT, mismatch_reason


DENIED = {"valid": False, "reason": NO_MATCHING_CONSENT}


async def _create(lifecycle, principal_id="P1", fiduciary_id="F1", purposes=("buy",), **kwargs):
    return await lifecycle.create(
        {"id": principal_id},
        {"id": fiduciary_id},
        [{"purpose_id": purpose_id} for purpose_id in purposes],
        **kwargs,
    )


def _dump(verdict):
    return verdict.model_dump(mode="json", exclude_none=True)


# ============================================================================
# Scenarios
# ============================================================================

@pytest.mark.anyio
async def test_create_validate_revoke_scenario(lifecycle, engine):
    artifact = await _create(lifecycle)

    verdict = await engine.validate("P1", "F1", "buy")

    assert verdict.valid is True
    assert verdict.consent_id == artifact.consent_id
    assert verdict.status == "active"
    assert verdict.granted_at == artifact.granted_at
    assert verdict.proof.kid == artifact.proof.kid
    assert verdict.proof.jws == artifact.proof.jws

    await lifecycle.revoke(artifact.consent_id)

    assert _dump(await engine.validate("P1", "F1", "buy")) == DENIED


@pytest.mark.anyio
async def test_data_type_subset_scenario(lifecycle, engine):
    await _create(lifecycle, data_types=["email", "phone"])

    assert (await engine.validate("P1", "F1", "buy", ["email"])).valid is True
    assert (await engine.validate("P1", "F1", "buy", ["phone", "email"])).valid is True
    assert _dump(await engine.validate("P1", "F1", "buy", ["email", "address"])) == DENIED


@pytest.mark.anyio
@pytest.mark.parametrize(
    "requested, expected",
    [
        (["x"], False),
        (["y"], True),
        ([], True),
        (None, True),
    ],
)
async def test_data_types_query_against_single_type(lifecycle, engine, requested, expected):
    await _create(lifecycle, data_types=["y"])

    assert (await engine.validate("P1", "F1", "buy", requested)).valid is expected


@pytest.mark.anyio
async def test_purpose_absent_from_artifact_is_invalid(lifecycle, engine):
    await _create(lifecycle, purposes=("buy", "ship"))

    assert (await engine.validate("P1", "F1", "ship")).valid is True
    assert _dump(await engine.validate("P1", "F1", "marketing")) == DENIED


@pytest.mark.anyio
async def test_principal_and_fiduciary_must_match(lifecycle, engine):
    await _create(lifecycle)

    assert (await engine.validate("P2", "F1", "buy")).valid is False
    assert (await engine.validate("P1", "F2", "buy")).valid is False


@pytest.mark.anyio
async def test_past_expiry_never_validates(lifecycle, engine, clock):
    await _create(lifecycle, expires_at=clock() - timedelta(minutes=1))

    assert _dump(await engine.validate("P1", "F1", "buy")) == DENIED


@pytest.mark.anyio
async def test_expiry_is_evaluated_on_every_call(lifecycle, engine, clock):
    await _create(lifecycle, expires_at=clock() + timedelta(days=7))

    assert (await engine.validate("P1", "F1", "buy")).valid is True

    clock.advance(days=8)

    assert (await engine.validate("P1", "F1", "buy")).valid is False


@pytest.mark.anyio
async def test_first_qualifying_consent_wins(lifecycle, engine):
    revoked = await _create(lifecycle)
    await lifecycle.revoke(revoked.consent_id)
    active = await _create(lifecycle)

    verdict = await engine.validate("P1", "F1", "buy")

    assert verdict.consent_id == active.consent_id


@pytest.mark.anyio
@pytest.mark.parametrize(
    "principal_id, fiduciary_id, purpose_id",
    [
        (None, "F1", "buy"),
        ("P1", "", "buy"),
        ("P1", "F1", None),
    ],
)
async def test_missing_query_fields_raise_validation_error(engine, principal_id, fiduciary_id, purpose_id):
    with pytest.raises(ValidationError) as exc_info:
        await engine.validate(principal_id, fiduciary_id, purpose_id)

    assert exc_info.value.details["required"] == ["principal_id", "fiduciary_id", "purpose_id"]


@pytest.mark.anyio
async def test_empty_store_yields_no_matching_consent(engine):
    assert _dump(await engine.validate("P1", "F1", "buy")) == DENIED


# ============================================================================
# Tampering
# ============================================================================

@pytest.mark.anyio
async def test_tampered_purposes_are_excluded(lifecycle, engine, store, caplog):
    artifact = await _create(lifecycle, purposes=("buy",))
    stored = await store.get(artifact.consent_id)
    tampered = stored.model_copy(
        update={"purposes": stored.purposes + [stored.purposes[0].model_copy(update={"purpose_id": "sell"})]}
    )
    await store.update(artifact.consent_id, tampered)

    with caplog.at_level(logging.WARNING, logger="consent_manager.validation"):
        sell = await engine.validate("P1", "F1", "sell")
        buy = await engine.validate("P1", "F1", "buy")

    assert _dump(sell) == DENIED
    assert _dump(buy) == DENIED
    assert f"Invalid signature for consent: {artifact.consent_id}" in caplog.text


@pytest.mark.anyio
async def test_tampered_candidate_does_not_block_later_valid_consent(lifecycle, engine, store):
    corrupted = await _create(lifecycle)
    stored = await store.get(corrupted.consent_id)
    await store.update(corrupted.consent_id, stored.model_copy(update={"data_types": ["email"]}))
    intact = await _create(lifecycle)

    verdict = await engine.validate("P1", "F1", "buy")

    assert verdict.valid is True
    assert verdict.consent_id == intact.consent_id


@pytest.mark.anyio
async def test_signature_checked_only_for_structural_matches(lifecycle, engine, signer):
    await _create(lifecycle, principal_id="P1")
    await _create(lifecycle, principal_id="P2")
    await _create(lifecycle, principal_id="P3")

    with patch.object(signer, "verify_artifact", wraps=signer.verify_artifact) as verify_spy:
        verdict = await engine.validate("P2", "F1", "buy")

    assert verdict.valid is True
    assert verify_spy.call_count == 1


# ============================================================================
# Predicate order
# ============================================================================

@pytest.mark.anyio
async def test_mismatch_reason_reports_first_failing_predicate(lifecycle, clock):
    artifact = await _create(lifecycle, data_types=["email"], expires_at=clock() + timedelta(days=1))
    now = clock()

    assert mismatch_reason(artifact, "P1", "F1", "buy", ["email"], now) is None
    assert mismatch_reason(artifact, "P1", "F1", "buy", ["phone"], now) == "data_types_not_covered"
    assert mismatch_reason(artifact, "P1", "F1", "sell", ["phone"], now) == "purpose_mismatch"
    assert mismatch_reason(artifact, "P1", "F9", "sell", None, now) == "fiduciary_mismatch"
    assert mismatch_reason(artifact, "P9", "F9", "sell", None, now) == "principal_mismatch"
    assert mismatch_reason(artifact, "P9", "F9", "sell", None, now + timedelta(days=2)) == "expired"

    revoked = await lifecycle.revoke(artifact.consent_id)
    assert mismatch_reason(revoked, "P9", "F9", "sell", None, now + timedelta(days=2)) == "inactive"


# ============================================================================
# Durable store corruption
# ============================================================================

@pytest.fixture
async def sql_backed(tmp_path, signer, settings, clock):
    """Lifecycle manager and engine sharing a SQLite-backed store."""
    pytest.importorskip("aiosqlite")
    from consent_manager.config import Settings
    from consent_manager.database import create_engine_from_settings, create_tables, get_session_maker
    from consent_manager.lifecycle import ConsentLifecycleManager
    from consent_manager.sql_store import SQLConsentStore
    from consent_manager.validation import ValidationEngine

    db_engine = create_engine_from_settings(Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'consents.db'}"))
    await create_tables(db_engine)
    sql_store = SQLConsentStore(get_session_maker(db_engine))
    try:
        yield (
            ConsentLifecycleManager(signer, sql_store, settings=settings, clock=clock),
            ValidationEngine(signer, sql_store, clock=clock),
            sql_store,
        )
    finally:
        await db_engine.dispose()


async def _rewrite_row(sql_store, consent_id, mutate):
    from sqlalchemy import update

    from consent_manager.db_models import ConsentRecord

    artifact = await sql_store.get(consent_id)
    document = artifact.to_document()
    mutate(document)
    async with sql_store.session_maker() as session:
        await session.execute(
            update(ConsentRecord).where(ConsentRecord.consent_id == consent_id).values(document=document)
        )
        await session.commit()


@pytest.mark.anyio
async def test_sql_row_with_edited_purposes_fails_signature(sql_backed, clock, caplog):
    lifecycle, engine, sql_store = sql_backed
    edited = await _create(lifecycle)
    clock.advance(seconds=1)
    intact = await _create(lifecycle)
    await _rewrite_row(sql_store, edited.consent_id, lambda doc: doc["purposes"].append({"purpose_id": "sell"}))

    with caplog.at_level(logging.WARNING, logger="consent_manager.validation"):
        sell = await engine.validate("P1", "F1", "sell")
        buy = await engine.validate("P1", "F1", "buy")

    assert _dump(sell) == DENIED
    assert buy.consent_id == intact.consent_id
    assert f"Invalid signature for consent: {edited.consent_id}" in caplog.text


@pytest.mark.anyio
async def test_sql_row_with_malformed_document_is_skipped(sql_backed, clock):
    lifecycle, engine, sql_store = sql_backed
    malformed = await _create(lifecycle)
    clock.advance(seconds=1)
    intact = await _create(lifecycle)
    await _rewrite_row(sql_store, malformed.consent_id, lambda doc: doc.update(purposes=[{"name": "buy"}]))

    verdict = await engine.validate("P1", "F1", "buy")

    assert verdict.valid is True
    assert verdict.consent_id == intact.consent_id


# ============================================================================
# Opaque identifiers
# ============================================================================

@pytest.mark.anyio
async def test_non_string_identifiers_match_strictly(lifecycle, engine):
    artifact = await _create(lifecycle, principal_id=42, fiduciary_id={"org": "F1"}, purposes=(1,))

    verdict = await engine.validate(42, {"org": "F1"}, 1)

    assert verdict.consent_id == artifact.consent_id
    assert (await engine.validate("42", {"org": "F1"}, 1)).valid is False
    assert (await engine.validate(42, {"org": "F1"}, "1")).valid is False
    assert (await engine.validate(42, {"org": "F1"}, True)).valid is False
