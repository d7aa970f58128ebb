from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth.models import UserRole
from casework.cases.models import CaseStatus
from casework.evidence.models import Quote, Source


async def _live_snapshot(client: AsyncClient, headers: dict, case_id) -> dict:
    case = (await client.get(f"/v1/cases/{case_id}", headers=headers)).json()
    quotes = (await client.get(f"/v1/cases/{case_id}/quotes", headers=headers)).json()
    sources = (await client.get(f"/v1/cases/{case_id}/sources", headers=headers)).json()
    return {**case["fields"], "quotes": quotes, "sources": sources}


async def _add_quote(client: AsyncClient, headers: dict, case_id, text: str, url: str, fields=()) -> dict:
    response = await client.post(
        f"/v1/cases/{case_id}/quotes",
        json={"quote_text": text, "source_url": url, "linked_fields": list(fields)},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_validate_applies_only_changed_fields_and_upserts_quotes(
    async_client: AsyncClient, make_user, make_case, headers_for
):
    submitter = await make_user(UserRole.EDITOR)
    editor = headers_for(submitter)
    proposer = headers_for(await make_user(UserRole.ANALYST, name="proposer"))
    reviewer = headers_for(await make_user(UserRole.ANALYST, name="reviewer"))
    validator = headers_for(await make_user(UserRole.ANALYST, name="validator"))
    case = await make_case(submitter, status=CaseStatus.VERIFIED)
    case_id = case.id

    kept = await _add_quote(async_client, editor, case_id, "Original wording", "https://example.org/a", ["summary"])
    untouched = await _add_quote(async_client, editor, case_id, "Left alone", "https://example.org/b")

    proposed = await _live_snapshot(async_client, editor, case_id)
    proposed["summary"] = "Corrected summary"
    proposed["incident_date"] = "2024-01-01T00:00:00.000Z"
    proposed["quotes"] = [
        {**kept, "quote_text": "Corrected wording"},
        {"quote_text": "Brand new quote", "source_url": "https://example.org/c", "linked_fields": ["cause_of_death"]},
    ]

    response = await async_client.post(
        "/v1/proposed-changes",
        json={"entity_type": "incident", "entity_id": str(case_id), "proposed_data": proposed,
              "change_summary": "Fix summary and quotes"},
        headers=proposer,
    )
    assert response.status_code == 201, response.text
    proposal = response.json()
    assert proposal["changed_fields"] == ["summary", "quotes"]
    assert proposal["status"] == "pending_review"
    url = f"/v1/proposed-changes/{proposal['id']}"

    response = await async_client.get(url, headers=reviewer)
    detail = response.json()
    assert detail["original_deleted"] is False
    assert detail["original"]["summary"] == "Original summary"
    assert detail["diff"]["fields"] == [
        {"field": "summary", "original": "Original summary", "proposed": "Corrected summary"}
    ]
    assert len(detail["diff"]["evidence"]["quotes"]["insert"]) == 1

    response = await async_client.patch(url, json={"action": "approve_for_validation"}, headers=proposer)
    assert response.status_code == 403

    response = await async_client.patch(url, json={"action": "validate"}, headers=validator)
    assert response.status_code == 400

    response = await async_client.patch(url, json={"action": "approve_for_validation"}, headers=reviewer)
    assert response.json()["proposal"]["status"] == "pending_validation"

    response = await async_client.patch(url, json={"action": "validate"}, headers=reviewer)
    assert response.status_code == 403

    response = await async_client.patch(url, json={"action": "validate", "notes": "Checked"}, headers=validator)
    assert response.status_code == 200, response.text
    assert response.json()["proposal"]["status"] == "approved"
    assert response.json()["proposal"]["applied_at"] is not None

    case_body = (await async_client.get(f"/v1/cases/{case_id}", headers=editor)).json()
    assert case_body["fields"]["summary"] == "Corrected summary"
    assert case_body["fields"]["incident_date"] == "2024-01-01"
    assert case_body["fields"]["city"] == "Newark"

    quotes = {q["id"]: q for q in (await async_client.get(f"/v1/cases/{case_id}/quotes", headers=editor)).json()}
    assert len(quotes) == 3
    assert quotes[kept["id"]]["quote_text"] == "Corrected wording"
    assert quotes[untouched["id"]]["quote_text"] == "Left alone"
    [added] = [q for q in quotes.values() if q["quote_text"] == "Brand new quote"]
    assert added["linked_fields"] == ["cause_of_death"]

    history = (await async_client.get(f"/v1/cases/{case_id}/history", headers=editor)).json()
    assert [e["action"] for e in history] == ["proposal_applied"]


@pytest.mark.asyncio
async def test_no_op_proposal_is_refused(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    editor = headers_for(submitter)
    proposer = headers_for(await make_user(UserRole.ANALYST))
    case = await make_case(submitter, status=CaseStatus.VERIFIED)
    case_id = case.id
    await _add_quote(async_client, editor, case_id, "Some quote", "https://example.org/a", ["city"])

    proposed = await _live_snapshot(async_client, editor, case_id)
    proposed["incident_date"] = "2024-01-01T00:00:00Z"
    proposed["cause_of_death"] = "Unknown"
    proposed["tags"] = []
    proposed["extra_client_key"] = "ignored"

    response = await async_client.post(
        "/v1/proposed-changes",
        json={"entity_type": "incident", "entity_id": str(case_id), "proposed_data": proposed},
        headers=proposer,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "No changes detected. Proposed data is identical to original."

    response = await async_client.get("/v1/proposed-changes", headers=proposer)
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_create_validates_entity(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    proposer = headers_for(await make_user(UserRole.ANALYST))
    case = await make_case(submitter)
    case_id = case.id

    response = await async_client.post("/v1/proposed-changes", json={"entity_type": "incident"}, headers=proposer)
    assert response.status_code == 400

    response = await async_client.post(
        "/v1/proposed-changes",
        json={"entity_type": "tag", "entity_id": str(case_id), "proposed_data": {"summary": "x"}},
        headers=proposer,
    )
    assert response.status_code == 400

    response = await async_client.post(
        "/v1/proposed-changes",
        json={"entity_type": "statement", "entity_id": str(case_id), "proposed_data": {"headline": "x"}},
        headers=proposer,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reject_and_reopen(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    proposer = headers_for(await make_user(UserRole.ANALYST))
    reviewer_user = await make_user(UserRole.ANALYST, name="reviewer")
    reviewer_email = reviewer_user.email
    reviewer = headers_for(reviewer_user)
    case = await make_case(submitter)
    case_id = case.id

    response = await async_client.post(
        "/v1/proposed-changes",
        json={"entity_type": "incident", "entity_id": str(case_id),
              "proposed_data": {"subject_name": "Jane Doe", "incident_date": "2024-01-01", "city": "Camden",
                                "summary": "Original summary", "cause_of_death": "Unknown"}},
        headers=proposer,
    )
    assert response.json()["changed_fields"] == ["city"]
    url = f"/v1/proposed-changes/{response.json()['id']}"

    response = await async_client.patch(url, json={"action": "reopen"}, headers=reviewer)
    assert response.status_code == 400
    assert response.json()["detail"] == "Can only reopen rejected proposals"

    response = await async_client.patch(url, json={"action": "reject", "notes": "Unsourced"}, headers=reviewer)
    body = response.json()["proposal"]
    assert body["status"] == "rejected"
    assert body["reviewed_by"] is not None
    assert body["validated_by"] is None

    response = await async_client.patch(url, json={"action": "reopen", "notes": "Source found"}, headers=reviewer)
    body = response.json()["proposal"]
    assert body["status"] == "pending_review"
    assert body["reviewed_by"] is None
    assert body["review_notes"].startswith("Unsourced\n[Reopened by " + reviewer_email)
    assert body["review_notes"].endswith("] Source found")

    response = await async_client.get("/v1/proposed-changes", params={"status": "pending_review"}, headers=reviewer)
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_detail_reports_deleted_original(
    async_client: AsyncClient, db_session: AsyncSession, make_user, make_case, headers_for
):
    submitter = await make_user(UserRole.EDITOR)
    proposer = headers_for(await make_user(UserRole.ANALYST))
    case = await make_case(submitter)
    case_id = case.id

    response = await async_client.post(
        "/v1/proposed-changes",
        json={"entity_type": "incident", "entity_id": str(case_id), "proposed_data": {"summary": "New"}},
        headers=proposer,
    )
    proposal_id = response.json()["id"]

    await db_session.delete(case)
    await db_session.commit()

    response = await async_client.get(f"/v1/proposed-changes/{proposal_id}", headers=proposer)
    body = response.json()
    assert body["original"] is None
    assert body["original_deleted"] is True
    assert body["proposal"]["id"] == proposal_id


@pytest.mark.asyncio
async def test_create_refuses_values_that_cannot_be_applied(
    async_client: AsyncClient, make_user, make_case, headers_for
):
    submitter = await make_user(UserRole.EDITOR)
    editor = headers_for(submitter)
    proposer = headers_for(await make_user(UserRole.ANALYST))
    case = await make_case(submitter, status=CaseStatus.VERIFIED)
    other_case = await make_case(submitter, status=CaseStatus.VERIFIED)
    case_id, other_id = case.id, other_case.id
    foreign = await _add_quote(async_client, editor, other_id, "Elsewhere", "https://example.org/x")

    async def propose(**changes):
        data = {"subject_name": "Jane Doe", "incident_date": "2024-01-01", "city": "Newark",
                "summary": "Original summary", "cause_of_death": "Unknown", **changes}
        return await async_client.post(
            "/v1/proposed-changes",
            json={"entity_type": "incident", "entity_id": str(case_id), "proposed_data": data},
            headers=proposer,
        )

    response = await propose(age="not-a-number")
    assert response.status_code == 400
    assert response.json()["error"] == "validation"
    assert "age" in response.json()["detail"]

    response = await propose(quotes=[{**foreign, "quote_text": "Moved here"}])
    assert response.status_code == 400

    response = await propose(quotes=[{"quote_text": "New", "source_id": foreign["source_id"]}])
    assert response.status_code == 400

    response = await propose(quotes=[{"id": "not-a-uuid", "quote_text": "New"}])
    assert response.status_code == 400

    response = await propose(quotes=[{"quote_text": "New", "source_url": "https://example.org/y",
                                      "linked_fields": ["favourite_colour"]}])
    assert response.status_code == 400

    response = await propose(sources=[{"id": str(uuid4()), "url": "https://example.org/z"}])
    assert response.status_code == 400

    response = await propose(quotes="not a list")
    assert response.status_code == 400

    response = await async_client.get("/v1/proposed-changes", headers=proposer)
    assert response.json()["total"] == 0

    response = await propose(age="41")
    assert response.status_code == 201
    assert response.json()["changed_fields"] == ["age"]


@pytest.mark.asyncio
async def test_failed_validate_rolls_back_everything(
    async_client: AsyncClient, db_session: AsyncSession, make_user, make_case, headers_for
):
    submitter = await make_user(UserRole.EDITOR)
    editor = headers_for(submitter)
    proposer = headers_for(await make_user(UserRole.ANALYST, name="proposer"))
    reviewer = headers_for(await make_user(UserRole.ANALYST, name="reviewer"))
    validator = headers_for(await make_user(UserRole.ANALYST, name="validator"))
    case = await make_case(submitter, status=CaseStatus.VERIFIED)
    case_id = case.id
    existing = await _add_quote(async_client, editor, case_id, "Original wording", "https://example.org/a")

    proposed = await _live_snapshot(async_client, editor, case_id)
    proposed["summary"] = "Corrected summary"
    proposed["quotes"] = [
        {"quote_text": "Inserted first", "source_url": "https://example.org/new"},
        {**existing, "quote_text": "Corrected wording"},
    ]
    response = await async_client.post(
        "/v1/proposed-changes",
        json={"entity_type": "incident", "entity_id": str(case_id), "proposed_data": proposed},
        headers=proposer,
    )
    assert response.status_code == 201, response.text
    url = f"/v1/proposed-changes/{response.json()['id']}"
    response = await async_client.patch(url, json={"action": "approve_for_validation"}, headers=reviewer)
    assert response.json()["proposal"]["status"] == "pending_validation"

    # The quote the proposal edits disappears before validation
    quote = await db_session.get(Quote, UUID(existing["id"]))
    await db_session.delete(quote)
    await db_session.commit()

    response = await async_client.patch(url, json={"action": "validate"}, headers=validator)
    assert response.status_code == 404

    response = await async_client.get(url, headers=validator)
    body = response.json()["proposal"]
    assert body["status"] == "pending_validation"
    assert body["validated_by"] is None
    assert body["applied_at"] is None

    response = await async_client.get(f"/v1/cases/{case_id}", headers=editor)
    assert response.json()["fields"]["summary"] == "Original summary"

    quotes = await db_session.execute(select(func.count()).select_from(Quote))
    assert quotes.scalar() == 0
    sources = await db_session.execute(select(Source.url))
    assert sources.scalars().all() == ["https://example.org/a"]

    response = await async_client.get(f"/v1/cases/{case_id}/history", headers=editor)
    assert response.json() == []
