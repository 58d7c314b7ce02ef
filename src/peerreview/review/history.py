"""History loading — seeds the assignment map from existing peer reviews.

Re-running an assignment on a partially assigned peer review must not
duplicate earlier pairings, so every existing record is folded into the
reviewer → reviewee-ids map before the loop starts.
"""

from __future__ import annotations

from typing import Iterable, Optional

from peerreview.models.peer_review import PeerReviewRecord


def load_history(
    records: Iterable[PeerReviewRecord],
    assigned: Optional[dict[str, set[str]]] = None,
) -> dict[str, set[str]]:
    """Fold existing records into a reviewer → reviewee-ids map.

    Idempotent: loading the same records again leaves the map unchanged.
    Extends `assigned` in place when given.
    """
    result = assigned if assigned is not None else {}
    for record in records:
        result.setdefault(record.reviewer_group_id, set()).add(
            record.reviewee_group_id
        )
    return result
