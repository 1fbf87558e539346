"""Prometheus metrics for the scheduling engine"""

from prometheus_client import Counter, Histogram

BOOKABILITY_READS = Counter(
    'bookability_reads_total',
    'Bookability reads by the path that served them',
    ['source', 'reason']
)
BOOKABILITY_REFRESHES = Counter(
    'bookability_refreshes_total',
    'Per-payer snapshot refreshes',
    ['outcome']
)
BOOKABILITY_DIVERGENCE = Counter(
    'bookability_cache_divergence_total',
    'Cache vs live recompute disagreements',
    ['payer_id']
)
SLOTS_GENERATED = Counter(
    'slots_generated_total',
    'Slots returned to callers',
    ['scope']
)
SLOT_GENERATION_TRUNCATED = Counter(
    'slot_generation_truncated_total',
    'Slot generations cut short by the caller deadline'
)
SLOT_CONFLICTS = Counter(
    'slot_conflicts_total',
    'Bookings rejected by the storage-level uniqueness constraint'
)
SLOT_GENERATION_DURATION = Histogram(
    'slot_generation_duration_seconds',
    'Time spent generating slots',
    ['scope']
)
