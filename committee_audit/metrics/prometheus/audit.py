from prometheus_client import Gauge, Histogram
from prometheus_client.utils import INF

from committee_audit.variables import PROMETHEUS_PREFIX

AUDIT_EPOCH = Gauge(
    "audit_epoch",
    "Last audited epoch",
    namespace=PROMETHEUS_PREFIX,
)

AUDIT_DISCREPANCIES_COUNT = Gauge(
    "audit_discrepancies_count",
    "Attestations whose aggregation bits length differs from the committees size",
    ["reason"],
    namespace=PROMETHEUS_PREFIX,
)

AUDIT_SKIPPED_SLOTS_COUNT = Gauge(
    "audit_skipped_slots_count",
    "Slots excluded from the last audit",
    ["reason"],
    namespace=PROMETHEUS_PREFIX,
)

AUDIT_CHECKED_ATTESTATIONS_COUNT = Gauge(
    "audit_checked_attestations_count",
    "Attestations compared against the committee assignment in the last audit",
    namespace=PROMETHEUS_PREFIX,
)

AUDIT_DURATION = Histogram(
    "audit_duration",
    "Duration of the epoch audit",
    namespace=PROMETHEUS_PREFIX,
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, INF),
)
