import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth.models import User
from casework.cases import fields as field_registry
from casework.cases.repository import get_case
from casework.evidence.models import Quote, QuoteFieldLink, Source
from casework.evidence.schemas import QuoteCreate
from casework.shared.errors import NotFoundError, ValidationError
from casework.shared.models import utcnow
from casework.shared.transactions import atomic

logger = logging.getLogger(__name__)


def quote_to_dict(quote: Quote, linked_fields: Iterable[str] = ()) -> Dict[str, Any]:
    return {
        "id": quote.id,
        "case_id": quote.case_id,
        "source_id": quote.source_id,
        "quote_text": quote.quote_text,
        "category": quote.category,
        "page_number": quote.page_number,
        "verified": quote.verified,
        "verified_by": quote.verified_by,
        "verified_at": quote.verified_at,
        "linked_fields": sorted(linked_fields),
    }


def source_to_dict(source: Source) -> Dict[str, Any]:
    return {
        "id": source.id,
        "case_id": source.case_id,
        "url": source.url,
        "title": source.title,
        "publication": source.publication,
        "source_type": source.source_type,
        "author": source.author,
        "published_date": source.published_date,
        "archived_url": source.archived_url,
    }


class EvidenceLedger:
    """Quotes, sources and the links tying a quote to the fields it supports.

    The write helpers only flush; they run inside whichever workflow
    transaction calls them.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_source(self, case_id: UUID, url: str) -> Optional[Source]:
        result = await self.db.execute(
            select(Source).where(Source.case_id == case_id, Source.url == url)
        )
        return result.scalars().first()

    async def upsert_source(
        self,
        case_id: UUID,
        url: str,
        title: Optional[str] = None,
        publication: Optional[str] = None,
        source_type: Optional[str] = None,
    ) -> Source:
        """Return the case's source for ``url``, creating it on first use."""
        url = (url or "").strip()
        if not url:
            raise ValidationError("Source URL is required")
        source = await self.find_source(case_id, url)
        if source is not None:
            return source
        source = Source(
            case_id=case_id,
            url=url,
            title=title,
            publication=publication,
            source_type=source_type or "news",
        )
        self.db.add(source)
        await self.db.flush()
        logger.info(f"Created source {source.id} for case {case_id}")
        return source

    async def create_quote(
        self,
        case_id: UUID,
        source_id: Optional[UUID],
        quote_text: str,
        category: Optional[str] = None,
        page_number: Optional[int] = None,
        verified: bool = False,
    ) -> Quote:
        quote_text = (quote_text or "").strip()
        if not quote_text:
            raise ValidationError("Quote text is required")
        quote = Quote(
            case_id=case_id,
            source_id=source_id,
            quote_text=quote_text,
            category=category,
            page_number=page_number,
            verified=verified,
        )
        self.db.add(quote)
        await self.db.flush()
        return quote

    async def get_quote(self, case_id: UUID, quote_id: UUID) -> Quote:
        """A quote of this case; quotes of other cases are treated as absent."""
        quote = await self.db.get(Quote, quote_id)
        if quote is None or quote.case_id != case_id:
            raise NotFoundError("Quote not found for this case")
        return quote

    async def get_source(self, case_id: UUID, source_id: UUID) -> Source:
        source = await self.db.get(Source, source_id)
        if source is None or source.case_id != case_id:
            raise NotFoundError("Source not found for this case")
        return source

    async def link_quote_to_field(self, case_id: UUID, quote_id: UUID, field_name: str) -> QuoteFieldLink:
        """Idempotent: linking the same (case, quote, field) twice is a no-op."""
        result = await self.db.execute(
            select(QuoteFieldLink).where(
                QuoteFieldLink.case_id == case_id,
                QuoteFieldLink.quote_id == quote_id,
                QuoteFieldLink.field_name == field_name,
            )
        )
        link = result.scalars().first()
        if link is not None:
            return link
        link = QuoteFieldLink(case_id=case_id, quote_id=quote_id, field_name=field_name)
        self.db.add(link)
        await self.db.flush()
        return link

    async def linked_fields_by_quote(self, case_id: UUID) -> Dict[UUID, List[str]]:
        result = await self.db.execute(
            select(QuoteFieldLink.quote_id, QuoteFieldLink.field_name)
            .where(QuoteFieldLink.case_id == case_id)
        )
        linked: Dict[UUID, List[str]] = {}
        for quote_id, field_name in result.all():
            linked.setdefault(quote_id, []).append(field_name)
        return linked

    async def list_quotes(self, case_id: UUID) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Quote).where(Quote.case_id == case_id).order_by(Quote.created_at, Quote.id)
        )
        linked = await self.linked_fields_by_quote(case_id)
        return [quote_to_dict(q, linked.get(q.id, [])) for q in result.scalars().all()]

    async def list_sources(self, case_id: UUID) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Source).where(Source.case_id == case_id).order_by(Source.created_at, Source.id)
        )
        return [source_to_dict(s) for s in result.scalars().all()]

    async def evidence_for_field(self, case_id: UUID, field_name: str) -> List[Dict[str, Any]]:
        """All quotes linked to ``field_name`` on the case, with source metadata."""
        stmt = (
            select(Quote, Source)
            .join(QuoteFieldLink, QuoteFieldLink.quote_id == Quote.id)
            .outerjoin(Source, Source.id == Quote.source_id)
            .where(QuoteFieldLink.case_id == case_id, QuoteFieldLink.field_name == field_name)
            .order_by(Quote.created_at)
        )
        result = await self.db.execute(stmt)
        return [
            {
                "quote_id": quote.id,
                "quote_text": quote.quote_text,
                "category": quote.category,
                "verified": quote.verified,
                "source_id": source.id if source else None,
                "source_url": source.url if source else None,
                "source_title": source.title if source else None,
                "publication": source.publication if source else None,
            }
            for quote, source in result.all()
        ]

    async def add_quote(self, case_id: UUID, quote_in: QuoteCreate, actor: User) -> Dict[str, Any]:
        """Record a quote outside any review workflow, optionally linked to fields."""
        async with atomic(self.db, "add_quote", case_id=case_id, actor=actor.id):
            case = await get_case(self.db, case_id)
            for field_name in quote_in.linked_fields:
                field_registry.get_field(case.record_type, field_name)
            source = await self.upsert_source(
                case_id,
                quote_in.source_url,
                title=quote_in.source_title,
                publication=quote_in.publication,
                source_type=quote_in.source_type,
            )
            quote = await self.create_quote(
                case_id,
                source.id,
                quote_in.quote_text,
                category=quote_in.category,
                page_number=quote_in.page_number,
            )
            for field_name in quote_in.linked_fields:
                await self.link_quote_to_field(case_id, quote.id, field_name)
        logger.info(f"User {actor.id} added quote {quote.id} to case {case_id}")
        return quote_to_dict(quote, quote_in.linked_fields)

    async def set_quote_verified(self, quote_id: UUID, verified: bool, actor: User) -> Dict[str, Any]:
        async with atomic(self.db, "update_quote_verification", quote_id=quote_id):
            quote = await self.db.get(Quote, quote_id)
            if quote is None:
                raise NotFoundError("Quote not found")
            quote.verified = verified
            quote.verified_by = actor.id if verified else None
            quote.verified_at = utcnow() if verified else None
            await self.db.flush()
            linked = await self.linked_fields_by_quote(quote.case_id)
        return quote_to_dict(quote, linked.get(quote.id, []))
