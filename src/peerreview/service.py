"""Peer review service — unified facade for random assignment.

This is the primary interface for programmatic access. It orchestrates:
- Group roster (register groupings, validate them, record submissions)
- Random assignment runs (reviewer groups → reviewee groups)
- Persistence (event log, state store)

All operations produce typed results. Every created peer review is
persisted and logged as soon as it is made; a run that fails partway
keeps the pairings it already created, and the event log records
exactly which ones those are.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from peerreview.models.group import (
    ArtifactRef,
    GroupStatus,
    ReviewerGroup,
    RevieweeGroup,
)
from peerreview.models.peer_review import AssignmentContext, PeerReviewRecord
from peerreview.persistence.event_log import EventKind, EventLog, EventRecord
from peerreview.persistence.state_store import StateStore
from peerreview.policy.resolver import PolicyResolver
from peerreview.review.engine import AssignmentEngine
from peerreview.review.roster import GroupEntry, GroupRoster

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class PeerReviewService:
    """Peer review assignment facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = PeerReviewService(resolver)

        service.register_group("g1", "A1", {"alice", "bob"},
                               submission_id="s1", result_id="r1")
        service.register_group("pr1", "A1-PR", {"carol"})

        ctx = AssignmentContext(pr_assignment_id="A1-PR",
                                parent_assignment_id="A1")
        result = service.run_random_assignment(ctx, quota=2, seed="s")

    Persistence (optional):
        service = PeerReviewService(resolver, event_log=log, state_store=store)
        # State is persisted on each mutation and loaded on construction.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._resolver = resolver
        self._event_log = event_log
        self._state_store = state_store

        if state_store is not None:
            self._roster = state_store.load_roster()
            self._peer_reviews = state_store.load_peer_reviews()
        else:
            self._roster = GroupRoster()
            self._peer_reviews: dict[str, list[PeerReviewRecord]] = {}

        # Counters continue from persisted state to avoid ID collision on restart
        self._event_counter = event_log.count if event_log is not None else 0
        self._review_counter = sum(len(r) for r in self._peer_reviews.values())

        # Set when a state save fails after the audit event was written.
        self._persistence_degraded: bool = False

    # ------------------------------------------------------------------
    # Group management
    # ------------------------------------------------------------------

    def register_group(
        self,
        group_id: str,
        assignment_id: str,
        member_ids: set[str] | frozenset[str],
        status: GroupStatus = GroupStatus.VALID,
        submission_id: Optional[str] = None,
        result_id: Optional[str] = None,
    ) -> ServiceResult:
        """Register a grouping on an assignment, or update an existing one.

        Re-registering without submission IDs keeps the group's current
        submission.
        """
        if (submission_id is None) != (result_id is None):
            return ServiceResult(
                success=False,
                errors=["submission_id and result_id must be given together"],
            )

        gid = group_id.strip()
        previous = self._roster.get(gid) if gid else None
        submission = previous.submission if previous is not None else None
        if submission_id is not None:
            submission = ArtifactRef(submission_id=submission_id, result_id=result_id)

        try:
            self._roster.register(GroupEntry(
                group_id=group_id,
                assignment_id=assignment_id,
                member_ids=frozenset(member_ids),
                status=status,
                submission=submission,
            ))
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])

        err = self._record_event(
            EventKind.GROUP_REGISTERED,
            gid,
            {
                "assignment_id": assignment_id.strip(),
                "member_ids": sorted(m.strip() for m in member_ids),
                "status": status.value,
            },
        )
        if err:
            if previous is None:
                self._roster.remove(gid)
            else:
                self._roster.register(previous)
            return ServiceResult(success=False, errors=[err])

        return self._post_audit_result({"group_id": gid})

    def set_group_status(self, group_id: str, status: GroupStatus) -> ServiceResult:
        """Validate, reject or reopen a grouping."""
        entry = self._roster.get(group_id)
        if entry is None:
            return ServiceResult(success=False, errors=[f"Group not found: {group_id}"])

        old_status = entry.status
        entry.status = status

        err = self._record_event(
            EventKind.GROUP_STATUS_CHANGED,
            entry.group_id,
            {"from": old_status.value, "to": status.value},
        )
        if err:
            entry.status = old_status
            return ServiceResult(success=False, errors=[err])

        return self._post_audit_result({"status": status.value})

    def record_submission(
        self,
        group_id: str,
        submission_id: str,
        result_id: str,
    ) -> ServiceResult:
        """Set the current submission (and its latest result) of a group."""
        entry = self._roster.get(group_id)
        if entry is None:
            return ServiceResult(success=False, errors=[f"Group not found: {group_id}"])
        if not submission_id.strip() or not result_id.strip():
            return ServiceResult(
                success=False,
                errors=["Submission and result IDs must not be blank"],
            )

        old_submission = entry.submission
        entry.submission = ArtifactRef(
            submission_id=submission_id.strip(),
            result_id=result_id.strip(),
        )

        err = self._record_event(
            EventKind.SUBMISSION_RECORDED,
            entry.group_id,
            {
                "submission_id": entry.submission.submission_id,
                "result_id": entry.submission.result_id,
            },
        )
        if err:
            entry.submission = old_submission
            return ServiceResult(success=False, errors=[err])

        return self._post_audit_result({"result_id": entry.submission.result_id})

    def get_group(self, group_id: str) -> Optional[GroupEntry]:
        """Look up a grouping."""
        return self._roster.get(group_id)

    # ------------------------------------------------------------------
    # Random assignment
    # ------------------------------------------------------------------

    def peer_reviews(self, pr_assignment_id: str) -> list[PeerReviewRecord]:
        """All peer review records on a peer review assignment."""
        return list(self._peer_reviews.get(pr_assignment_id, []))

    def run_random_assignment(
        self,
        context: AssignmentContext,
        quota: Optional[int] = None,
        seed: Optional[str] = None,
    ) -> ServiceResult:
        """Randomly assign reviewee groups to every reviewer group.

        Args:
            context: Peer review assignment and the parent it reviews.
            quota: Distinct reviewees required per reviewer group. Uses
                   the policy default if None.
            seed: Seed for the pool permutation. If None, uses system
                  entropy.

        Returns:
            ServiceResult. On failure, data["failure"] names the failure
            kind and data["review_ids"] lists the pairings that were
            created (and kept) before the run stopped.
        """
        try:
            quota = self._resolver.resolve_quota(quota)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])

        reviewers = self._roster.reviewer_groups(context.pr_assignment_id)
        if not reviewers:
            return ServiceResult(
                success=False,
                errors=[f"No valid reviewer groups on {context.pr_assignment_id}"],
            )
        reviewees = self._roster.reviewee_groups(context.parent_assignment_id)
        if not reviewees:
            return ServiceResult(
                success=False,
                errors=[f"No valid reviewee groups on {context.parent_assignment_id}"],
            )

        err = self._record_event(
            EventKind.ASSIGNMENT_RUN_STARTED,
            "system",
            {
                "pr_assignment_id": context.pr_assignment_id,
                "parent_assignment_id": context.parent_assignment_id,
                "quota": quota,
                "reviewer_groups": len(reviewers),
                "reviewee_groups": len(reviewees),
            },
        )
        if err:
            return ServiceResult(success=False, errors=[err])

        def _create(
            reviewer: ReviewerGroup,
            reviewee: RevieweeGroup,
            artifact: ArtifactRef,
        ) -> PeerReviewRecord:
            return self._create_peer_review(context, reviewer, reviewee, artifact)

        engine = AssignmentEngine(
            create_record=_create,
            shares_no_students=self._roster.shares_no_students,
            latest_artifact=self._roster.latest_artifact,
            validate_capacity=self._resolver.validate_capacity(),
        )
        result = engine.run(
            reviewers,
            reviewees,
            self.peer_reviews(context.pr_assignment_id),
            quota,
            seed=seed,
        )

        review_ids = [r.review_id for r in result.records]
        errors = list(result.errors)
        data: dict[str, Any] = {
            "created": len(result.records),
            "review_ids": review_ids,
        }

        if result.success:
            err = self._record_event(
                EventKind.ASSIGNMENT_RUN_COMPLETED,
                "system",
                {"pr_assignment_id": context.pr_assignment_id, "created": len(review_ids)},
            )
        else:
            data["failure"] = result.failure.value
            err = self._record_event(
                EventKind.ASSIGNMENT_RUN_FAILED,
                "system",
                {
                    "pr_assignment_id": context.pr_assignment_id,
                    "failure": result.failure.value,
                    "created": len(review_ids),
                    "errors": list(result.errors),
                },
            )
        if err:
            errors.append(err)
        if self._persistence_degraded:
            data["warning"] = "Persistence degraded: state store is stale"

        return ServiceResult(success=result.success and not err, errors=errors, data=data)

    def _create_peer_review(
        self,
        context: AssignmentContext,
        reviewer: ReviewerGroup,
        reviewee: RevieweeGroup,
        artifact: ArtifactRef,
    ) -> PeerReviewRecord:
        """Persist one pairing. Raises ValueError or OSError on audit failure.

        Ordering: audit event first, then in-memory record, then state
        save. A failed save does not undo the record because the audit
        trail already holds it.
        """
        review_id = f"PR-{self._review_counter + 1:08d}"
        record = PeerReviewRecord(
            review_id=review_id,
            pr_assignment_id=context.pr_assignment_id,
            reviewer_group_id=reviewer.group_id,
            reviewee_group_id=reviewee.group_id,
            result_id=artifact.result_id,
            created_utc=datetime.now(timezone.utc),
        )
        self._append_event(
            EventKind.PEER_REVIEW_CREATED,
            reviewer.group_id,
            {
                "review_id": review_id,
                "pr_assignment_id": context.pr_assignment_id,
                "reviewee_group_id": reviewee.group_id,
                "submission_id": artifact.submission_id,
                "result_id": artifact.result_id,
            },
        )
        self._review_counter += 1
        self._peer_reviews.setdefault(context.pr_assignment_id, []).append(record)

        warning = self._safe_persist_post_audit()
        if warning:
            logger.warning(warning)
        return record

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Summary of roster and assignment state."""
        return {
            "groups": {
                "total": self._roster.count,
                "valid": self._roster.valid_count,
            },
            "peer_reviews": {
                pr_id: len(records)
                for pr_id, records in self._peer_reviews.items()
            },
            "events": self._event_log.count if self._event_log is not None else 0,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _append_event(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> None:
        """Append an audit event. Raises ValueError or OSError on failure."""
        if self._event_log is None:
            return
        event = EventRecord.create(
            event_id=self._next_event_id(),
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
        )
        self._event_log.append(event)

    def _record_event(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None."""
        try:
            self._append_event(kind, actor_id, payload)
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired).

        NOTE: This method can raise OSError. Mutators should use
        _safe_persist_post_audit() instead.
        """
        if self._state_store is None:
            return
        self._state_store.save_roster(self._roster)
        self._state_store.save_peer_reviews(self._peer_reviews)

    def _post_audit_result(self, data: dict[str, Any]) -> ServiceResult:
        """Persist after a committed audit event; a failed save is a warning."""
        warning = self._safe_persist_post_audit()
        if warning:
            logger.warning(warning)
            return ServiceResult(success=True, data={**data, "warning": warning})
        return ServiceResult(success=True, data=data)

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event has been committed.

        MUST NOT roll back: the audit trail is already durable. Marks
        the service degraded and returns a warning instead.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            return f"Persistence degraded: {e}; state committed in audit trail but StateStore is stale"
