"""Working pool construction — replicated, shuffled reviewee candidates.

The pool repeats the full reviewee list enough times to cover every
reviewer's quota, then permutes it once. After construction the pool
is only ever reordered by index swaps; its length never changes.
"""

from __future__ import annotations

import math
import random
from typing import Optional

from peerreview.models.group import ReviewerGroup, RevieweeGroup


def pool_repeats(reviewer_count: int, quota: int) -> int:
    """Number of copies of the reviewee list needed for the pool.

    Computed as ceil(reviewers * quota / reviewers), which is the quota
    itself for any non-empty reviewer list.
    """
    if reviewer_count <= 0:
        return 0
    return math.ceil(reviewer_count * quota / reviewer_count)


def make_rng(seed: Optional[str] = None) -> random.Random:
    """Seeded PRNG for deterministic replay; system entropy if seed is None."""
    return random.Random(seed)


def build_pool(
    reviewer_groups: list[ReviewerGroup],
    reviewee_groups: list[RevieweeGroup],
    quota: int,
    rng: random.Random,
) -> list[RevieweeGroup]:
    """Build the working pool: repeated reviewee list, shuffled once.

    Supply is not checked here. The pool covers demand only when there
    are at least as many reviewees as reviewers.
    """
    repeats = pool_repeats(len(reviewer_groups), quota)
    pool: list[RevieweeGroup] = []
    for _ in range(repeats):
        pool.extend(reviewee_groups)
    rng.shuffle(pool)
    return pool
