import pytest
from httpx import AsyncClient
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth.models import UserRole
from casework.evidence.models import QuoteFieldLink, Source
from casework.evidence.service import EvidenceLedger


@pytest.mark.asyncio
async def test_source_upsert_reuses_row_per_case(db_session: AsyncSession, make_user, make_case):
    submitter = await make_user(UserRole.EDITOR)
    case = await make_case(submitter)
    other_case = await make_case(submitter)
    ledger = EvidenceLedger(db_session)

    first = await ledger.upsert_source(case.id, "https://example.org/report", title="Report")
    again = await ledger.upsert_source(case.id, "https://example.org/report ")
    elsewhere = await ledger.upsert_source(other_case.id, "https://example.org/report")
    await db_session.commit()

    assert again.id == first.id
    assert elsewhere.id != first.id
    assert first.source_type == "news"
    count = await db_session.execute(select(func.count()).select_from(Source))
    assert count.scalar() == 2


@pytest.mark.asyncio
async def test_linking_is_idempotent(db_session: AsyncSession, make_user, make_case):
    submitter = await make_user(UserRole.EDITOR)
    case = await make_case(submitter)
    ledger = EvidenceLedger(db_session)

    source = await ledger.upsert_source(case.id, "https://example.org/obit", title="Obituary")
    quote = await ledger.create_quote(case.id, source.id, "She was 41.", category="age")
    await ledger.link_quote_to_field(case.id, quote.id, "age")
    await ledger.link_quote_to_field(case.id, quote.id, "age")
    await ledger.link_quote_to_field(case.id, quote.id, "subject_name")
    await db_session.commit()

    count = await db_session.execute(select(func.count()).select_from(QuoteFieldLink))
    assert count.scalar() == 2

    evidence = await ledger.evidence_for_field(case.id, "age")
    assert len(evidence) == 1
    assert evidence[0]["quote_text"] == "She was 41."
    assert evidence[0]["source_url"] == "https://example.org/obit"
    assert evidence[0]["source_title"] == "Obituary"

    [listed] = await ledger.list_quotes(case.id)
    assert listed["linked_fields"] == ["age", "subject_name"]


@pytest.mark.asyncio
async def test_add_quote_and_field_evidence_routes(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    editor = headers_for(submitter)
    analyst = headers_for(await make_user(UserRole.ANALYST))
    case = await make_case(submitter)
    case_id = case.id

    response = await async_client.post(
        f"/v1/cases/{case_id}/quotes",
        json={"quote_text": "Died of cardiac arrest", "source_url": "https://example.org/a",
              "source_title": "Local news", "linked_fields": ["cause_of_death"]},
        headers=editor,
    )
    assert response.status_code == 201
    quote = response.json()
    assert quote["linked_fields"] == ["cause_of_death"]
    assert quote["verified"] is False

    response = await async_client.get(f"/v1/cases/{case_id}/fields/cause_of_death/evidence", headers=analyst)
    assert [item["quote_id"] for item in response.json()] == [quote["id"]]

    response = await async_client.get(f"/v1/cases/{case_id}/sources", headers=analyst)
    assert [s["url"] for s in response.json()] == ["https://example.org/a"]

    response = await async_client.patch(
        f"/v1/quotes/{quote['id']}/verification", json={"verified": True}, headers=analyst
    )
    assert response.status_code == 200
    assert response.json()["verified"] is True
    assert response.json()["verified_by"] is not None

    response = await async_client.post(
        f"/v1/cases/{case_id}/quotes",
        json={"quote_text": "x", "source_url": "https://example.org/b", "linked_fields": ["not_a_field"]},
        headers=editor,
    )
    assert response.status_code == 400
