import hashlib
import json
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, func, case as sql_case
from sqlalchemy.ext.asyncio import AsyncSession

from casework.audit.models import HistoryAction
from casework.audit.service import HistoryService
from casework.auth.capabilities import Action, ensure_can, ensure_distinct, is_elevated
from casework.auth.models import User
from casework.cases.models import CaseRecord, CaseStatus
from casework.cases.repository import get_case
from casework.config import settings
from casework.shared.errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from casework.shared.models import utcnow
from casework.shared.transactions import atomic
from casework.verification_queue.models import (
    ASSIGNED_STATUSES,
    OPEN_STATUSES,
    RequestPriority,
    RequestStatus,
    ResultItemType,
    VerificationOutcome,
    VerificationRequest,
    VerificationResult,
    VerificationScope,
)
from casework.verification_queue.schemas import (
    VerificationRequestAction,
    VerificationRequestCreate,
    VerifierUpdate,
)

logger = logging.getLogger(__name__)

OUTCOME_HISTORY = {
    VerificationOutcome.PASSED: HistoryAction.VERIFICATION_PASSED,
    VerificationOutcome.PARTIAL: HistoryAction.VERIFICATION_PARTIAL,
    VerificationOutcome.FAILED: HistoryAction.VERIFICATION_FAILED,
}


def fingerprint(fields: Dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a field map."""
    canonical = json.dumps(fields or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def verifier_capacity(user: User) -> int:
    """Concurrent assignment cap; an explicit 0 stops new claims."""
    if user.verifier_max_concurrent is None:
        return settings.DEFAULT_VERIFIER_MAX_CONCURRENT
    return user.verifier_max_concurrent


def _enum_value(enum_cls, value: Optional[str], label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {label}. Must be one of: {allowed}")


class VerificationQueueService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.history = HistoryService(db)

    async def _get_request(self, request_id: UUID, lock: bool = False) -> VerificationRequest:
        stmt = select(VerificationRequest).where(VerificationRequest.id == request_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        request = result.scalars().first()
        if request is None:
            raise NotFoundError("Verification request not found")
        return request

    async def assigned_count(self, verifier_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(VerificationRequest)
            .where(
                VerificationRequest.assigned_to == verifier_id,
                VerificationRequest.status.in_(ASSIGNED_STATUSES),
            )
        )
        return result.scalar() or 0

    async def request_verification(self, case_id: UUID, request_in: VerificationRequestCreate,
                                   actor: User) -> VerificationRequest:
        scope = _enum_value(VerificationScope, request_in.verification_scope, "verification_scope")
        priority = _enum_value(RequestPriority, request_in.priority, "priority")
        if scope == VerificationScope.DATA and not request_in.items_to_verify:
            raise ValidationError("items_to_verify is required for data verification")

        async with atomic(self.db, "request_verification", case_id=case_id, actor=actor.id):
            case = await get_case(self.db, case_id, lock=True)
            if case.status != CaseStatus.VERIFIED:
                raise StateConflictError("Only verified cases can be sent for third-party verification")
            existing = await self.db.execute(
                select(VerificationRequest.id).where(
                    VerificationRequest.case_id == case_id,
                    VerificationRequest.status.in_(OPEN_STATUSES),
                )
            )
            if existing.first() is not None:
                raise StateConflictError("A verification request is already open for this case")

            request = VerificationRequest(
                case_id=case_id,
                requested_by=actor.id,
                verification_scope=scope,
                items_to_verify=request_in.items_to_verify if scope == VerificationScope.DATA else None,
                priority=priority,
                request_notes=request_in.request_notes,
                status=RequestStatus.PENDING,
            )
            self.db.add(request)
            await self.db.flush()
            await self.history.record(
                case_id,
                HistoryAction.VERIFICATION_REQUESTED,
                actor.id,
                notes=request_in.request_notes,
                detail={"request_id": str(request.id), "scope": scope.value, "priority": priority.value},
            )
        logger.info(f"Verification request {request.id} opened on case {case_id} by {actor.id}")
        return request

    async def list_claimable(self, actor: User) -> List[VerificationRequest]:
        """Pending, unassigned requests the actor is allowed to pick up."""
        urgent_first = sql_case((VerificationRequest.priority == RequestPriority.URGENT, 0), else_=1)
        stmt = (
            select(VerificationRequest)
            .join(CaseRecord, CaseRecord.id == VerificationRequest.case_id)
            .where(
                VerificationRequest.status == RequestStatus.PENDING,
                VerificationRequest.assigned_to.is_(None),
            )
            .order_by(urgent_first, VerificationRequest.created_at)
        )
        if not is_elevated(actor):
            stmt = stmt.where(
                (CaseRecord.submitted_by.is_(None)) | (CaseRecord.submitted_by != actor.id),
                (VerificationRequest.requested_by.is_(None)) | (VerificationRequest.requested_by != actor.id),
            )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_assigned(self, actor: User) -> List[VerificationRequest]:
        result = await self.db.execute(
            select(VerificationRequest)
            .where(
                VerificationRequest.assigned_to == actor.id,
                VerificationRequest.status.in_(ASSIGNED_STATUSES),
            )
            .order_by(VerificationRequest.assigned_at)
        )
        return list(result.scalars().all())

    async def dashboard(self, actor: User) -> Dict[str, Any]:
        assigned = await self.list_assigned(actor)
        claimable = await self.list_claimable(actor)
        max_concurrent = verifier_capacity(actor)
        return {
            "current_assigned": len(assigned),
            "max_concurrent": max_concurrent,
            "available_capacity": max(max_concurrent - len(assigned), 0),
            "claimable_count": len(claimable),
            "assigned": assigned,
        }

    async def detail(self, request_id: UUID) -> Dict[str, Any]:
        request = await self._get_request(request_id)
        result = await self.db.execute(
            select(VerificationResult)
            .where(VerificationResult.request_id == request_id)
            .order_by(VerificationResult.created_at)
        )
        return {"request": request, "results": list(result.scalars().all())}

    async def perform(self, request_id: UUID, payload: VerificationRequestAction, actor: User) -> Dict[str, Any]:
        handlers = {
            "assign": self._assign,
            "unassign": self._unassign,
            "complete": self._complete,
            "reject": self._reject,
            "needs_revision": self._needs_revision,
            "resubmit": self._resubmit,
        }
        handler = handlers.get(payload.action)
        if handler is None:
            raise ValidationError(f"Invalid action. Must be one of: {', '.join(handlers)}")

        async with atomic(self.db, f"{payload.action}_verification_request", request_id=request_id, actor=actor.id):
            request = await self._get_request(request_id, lock=True)
            case = await get_case(self.db, request.case_id, lock=True)
            message = await handler(request, case, payload, actor)
            await self.db.flush()
        logger.info(f"Verification request {request_id} -> {request.status.value} by {actor.id}")
        return {"message": message, "request": request}

    def _ensure_assignee(self, request: VerificationRequest, actor: User) -> None:
        if request.status != RequestStatus.IN_PROGRESS:
            raise StateConflictError("Request is not in progress")
        if request.assigned_to != actor.id and not is_elevated(actor):
            raise AuthorizationError("Only the assigned verifier can act on this request")

    async def _assign(self, request, case, payload, actor: User) -> str:
        ensure_can(actor, Action.WORK_VERIFICATION)
        if request.status != RequestStatus.PENDING or request.assigned_to is not None:
            raise StateConflictError("Request is not available for assignment")
        ensure_distinct(actor, case.submitted_by, "Cannot verify your own submission")
        ensure_distinct(actor, request.requested_by, "Cannot verify a request you opened")

        # Serialize claims by the same verifier so the cap holds under concurrency
        await self.db.execute(select(User.id).where(User.id == actor.id).with_for_update())
        if await self.assigned_count(actor.id) >= verifier_capacity(actor):
            raise StateConflictError("You have reached your maximum concurrent assignments")

        request.assigned_to = actor.id
        request.assigned_at = utcnow()
        request.status = RequestStatus.IN_PROGRESS
        await self.history.record(
            case.id,
            HistoryAction.VERIFICATION_ASSIGNED,
            actor.id,
            detail={"request_id": str(request.id)},
        )
        return "Verification request claimed"

    async def _unassign(self, request, case, payload, actor: User) -> str:
        self._ensure_assignee(request, actor)
        request.assigned_to = None
        request.assigned_at = None
        request.status = RequestStatus.PENDING
        return "Verification request returned to the queue"

    async def _complete(self, request, case, payload, actor: User) -> str:
        self._ensure_assignee(request, actor)
        outcome = _enum_value(VerificationOutcome, payload.outcome, "outcome")
        results = []
        for item in payload.item_results:
            results.append(VerificationResult(
                request_id=request.id,
                item_type=_enum_value(ResultItemType, item.item_type, "item_type"),
                item_id=item.item_id,
                field_slug=item.field_slug,
                verified=item.verified,
                verified_by=actor.id,
                notes=item.notes,
                caveats=item.caveats,
                issues=item.issues,
            ))
        self.db.add_all(results)

        now = utcnow()
        request.status = RequestStatus.COMPLETED
        request.completed_at = now
        request.verification_result = outcome
        request.verifier_notes = payload.notes
        request.issues_found = payload.issues

        if outcome == VerificationOutcome.PASSED:
            case.verification_level = settings.THIRD_PARTY_VERIFICATION_LEVEL
            case.verification_scope = request.verification_scope.value
            case.verification_date = now
            if request.verification_scope == VerificationScope.RECORD:
                case.verified_data_hash = fingerprint(case.fields)

        await self.history.record(
            case.id,
            OUTCOME_HISTORY[outcome],
            actor.id,
            notes=payload.notes,
            detail={"request_id": str(request.id), "items": len(results)},
        )
        return f"Verification completed: {outcome.value}"

    async def _reject(self, request, case, payload, actor: User) -> str:
        reason = (payload.rejection_reason or "").strip()
        if not reason:
            raise ValidationError("rejection_reason is required")
        self._ensure_assignee(request, actor)
        request.status = RequestStatus.REJECTED
        request.rejection_reason = reason
        request.verification_result = VerificationOutcome.FAILED
        request.completed_at = utcnow()
        await self.history.record(
            case.id,
            HistoryAction.VERIFICATION_REJECTED,
            actor.id,
            notes=reason,
            detail={"request_id": str(request.id)},
        )
        return "Verification request rejected"

    async def _needs_revision(self, request, case, payload, actor: User) -> str:
        self._ensure_assignee(request, actor)
        request.status = RequestStatus.NEEDS_REVISION
        request.verifier_notes = payload.notes
        request.issues_found = payload.issues
        await self.history.record(
            case.id,
            HistoryAction.VERIFICATION_NEEDS_REVISION,
            actor.id,
            notes=payload.notes,
            detail={"request_id": str(request.id)},
        )
        return "Revision requested"

    async def _resubmit(self, request, case, payload, actor: User) -> str:
        if request.status != RequestStatus.NEEDS_REVISION:
            raise StateConflictError("Only requests awaiting revision can be resubmitted")
        if request.requested_by != actor.id and not is_elevated(actor):
            raise AuthorizationError("Only the requester can resubmit this request")
        if payload.notes:
            request.request_notes = payload.notes
        request.status = RequestStatus.IN_PROGRESS if request.assigned_to else RequestStatus.PENDING
        return "Verification request resubmitted"


class VerifierPoolService:
    """Admin view of the independent verifier pool."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, user_ids: List[UUID]) -> Dict[UUID, Dict[str, int]]:
        result = await self.db.execute(
            select(
                VerificationRequest.assigned_to,
                VerificationRequest.status,
                VerificationRequest.verification_result,
                func.count(),
            )
            .where(VerificationRequest.assigned_to.in_(user_ids))
            .group_by(
                VerificationRequest.assigned_to,
                VerificationRequest.status,
                VerificationRequest.verification_result,
            )
        )
        load = {
            user_id: {"current_assigned": 0, "total_completed": 0, "passed": 0, "partial": 0, "failed": 0}
            for user_id in user_ids
        }
        for user_id, status, outcome, count in result.all():
            stats = load[user_id]
            if status in ASSIGNED_STATUSES:
                stats["current_assigned"] += count
            elif status == RequestStatus.COMPLETED:
                stats["total_completed"] += count
                if outcome is not None:
                    stats[VerificationOutcome(outcome).value] += count
        return load

    def _summary(self, user: User, stats: Dict[str, int]) -> Dict[str, Any]:
        return {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "is_verifier": user.is_verifier,
            "verifier_max_concurrent": verifier_capacity(user),
            **stats,
        }

    async def list_verifiers(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(User).where(User.is_verifier.is_(True)).order_by(User.full_name, User.email)
        )
        verifiers = list(result.scalars().all())
        load = await self._load([user.id for user in verifiers])
        return [self._summary(user, load[user.id]) for user in verifiers]

    async def update_verifier(self, user_id: UUID, update: VerifierUpdate, actor: User) -> Dict[str, Any]:
        """Grant or revoke verifier access and set the assignment cap."""
        async with atomic(self.db, "update_verifier", user_id=user_id, actor=actor.id):
            result = await self.db.execute(
                select(User)
                .where(User.id == user_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            user = result.scalars().first()
            if user is None:
                raise NotFoundError("User not found")

            active = (await self._load([user.id]))[user.id]["current_assigned"]
            if update.is_verifier is False and user.is_verifier and active:
                raise StateConflictError(
                    "Cannot remove verifier with active assignments. Reassign or complete their requests first."
                )
            if update.is_verifier is not None:
                user.is_verifier = update.is_verifier
            if update.verifier_max_concurrent is not None:
                if not user.is_verifier:
                    raise StateConflictError("User is not a verifier")
                user.verifier_max_concurrent = update.verifier_max_concurrent
            if not user.is_verifier:
                user.verifier_max_concurrent = settings.DEFAULT_VERIFIER_MAX_CONCURRENT
            await self.db.flush()
            summary = self._summary(user, (await self._load([user.id]))[user.id])
        logger.info(
            f"Verifier settings for {user_id} updated by {actor.id}: "
            f"is_verifier={summary['is_verifier']} max={summary['verifier_max_concurrent']}"
        )
        return summary
