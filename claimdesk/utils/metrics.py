"""Prometheus metrics definitions"""

from prometheus_client import Counter, Histogram, Gauge


# Matching metrics
match_comparisons = Counter(
    'match_comparisons_total',
    'Item/report pairs scored',
    labelnames=['trigger']  # item, report, rescan
)

matches_created = Counter(
    'matches_created_total',
    'Matches persisted',
    labelnames=['status']  # PENDING, AUTO_CONFIRMED
)

match_candidates_dropped = Counter(
    'match_candidates_dropped_total',
    'Candidates scoring below the reject threshold'
)

rescan_outcomes = Counter(
    'rescan_outcomes_total',
    'Outcome of each rescanned match',
    labelnames=['outcome']  # deleted, promoted, updated, skipped
)

match_confidence = Histogram(
    'match_confidence_score',
    'Confidence score of persisted matches',
    buckets=[30, 40, 50, 60, 70, 85, 100]
)

rescan_duration = Histogram(
    'rescan_duration_seconds',
    'Time to rescan all pending matches',
    buckets=[0.1, 0.5, 1, 5, 30, 120]
)

# Claim metrics
claim_transitions = Counter(
    'claim_transitions_total',
    'Claim state transitions',
    labelnames=['status']
)

claims_deleted = Counter(
    'claims_deleted_total',
    'Soft-deleted claims',
    labelnames=['role']
)

fraud_risk_score = Histogram(
    'fraud_risk_score',
    'Distribution of computed fraud risk scores',
    buckets=[10, 25, 40, 55, 70, 85, 100]
)

fraud_scoring_failures = Counter(
    'fraud_scoring_failures_total',
    'Fraud scoring failures swallowed during claim creation'
)

high_risk_claims = Gauge(
    'high_risk_claims',
    'Claims at or above the high-risk threshold (last listing)'
)

challenge_results = Counter(
    'challenge_results_total',
    'Graded challenge responses',
    labelnames=['result']  # passed, failed
)

# Notification metrics
notifications_dispatched = Counter(
    'notifications_dispatched_total',
    'Notification deliveries to the queue',
    labelnames=['event', 'status']  # status: queued, failed
)
