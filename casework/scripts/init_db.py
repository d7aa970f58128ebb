import asyncio
from casework.database import engine, Base

# Import all models to ensure they are registered in Base.metadata
from casework.auth.models import User
from casework.cases.models import CaseRecord, ValidationIssue
from casework.audit.models import VerificationHistoryEntry
from casework.evidence.models import Source, Quote, QuoteFieldLink
from casework.field_verification.models import FieldVerification
from casework.suggestions.models import EditSuggestion
from casework.proposals.models import ProposedChange
from casework.verification_queue.models import VerificationRequest, VerificationResult
from casework.shared.sequences import SequenceCounter

async def init_models():
    async with engine.begin() as conn:
        # await conn.run_sync(Base.metadata.drop_all) # Optional: Reset DB
        await conn.run_sync(Base.metadata.create_all)
    print("Database tables created.")

if __name__ == "__main__":
    asyncio.run(init_models())
