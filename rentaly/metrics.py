"""
Prometheus metrics for booking transitions, storage transactions and coupons.

This module defines all Prometheus metrics used throughout the application for
observability and monitoring. Metrics are exposed via the /metrics endpoint for
scraping by Prometheus.

Metric Types:
    - Counter: Cumulative metrics that only increase (e.g., total transitions)
    - Histogram: Observations bucketed by value (e.g., transaction latency)

Example:
    >>> from rentaly.metrics import booking_transitions
    >>> booking_transitions.labels(
    ...     from_status="pending", to_status="confirmed", outcome="success"
    ... ).inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Booking Lifecycle Metrics
# =============================================================================

booking_transitions = Counter(
    "rentaly_booking_transitions_total",
    "Booking status transitions attempted, by outcome",
    ["from_status", "to_status", "outcome"],
)
"""
Counter for booking status transitions.

Labels:
    from_status: Status before the transition
    to_status: Requested status
    outcome: success, or the rejection code (same_state, invalid_transition, ...)
"""

bookings_created = Counter(
    "rentaly_bookings_created_total",
    "Bookings created in pending status",
    ["listing_type", "with_coupon"],
)
"""
Counter for created bookings.

Labels:
    listing_type: property or vehicle
    with_coupon: "true" when a coupon was redeemed at creation
"""

date_conflicts = Counter(
    "rentaly_date_conflicts_total",
    "Approvals refused because the dates overlap a blocked interval",
    ["listing_type"],
)
"""
Counter for date conflicts detected at approval time.

Labels:
    listing_type: property or vehicle
"""

admission_denials = Counter(
    "rentaly_admission_denials_total",
    "Booking creations refused by admission control",
    ["reason"],
)
"""
Counter for admission-control rejections.

Labels:
    reason: active_booking_limit, booking_cooldown or flagged_for_review
"""

# =============================================================================
# Storage Transaction Metrics
# =============================================================================

transaction_retries = Counter(
    "rentaly_transaction_retries_total",
    "Storage transactions retried after a transient failure",
    ["operation"],
)
"""
Counter for retried storage transactions.

Labels:
    operation: Service operation name (approve_booking, redeem_coupon, ...)
"""

transaction_duration = Histogram(
    "rentaly_transaction_duration_seconds",
    "Duration of committed storage transactions in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, float("inf")),
)
"""
Histogram for storage transaction duration (successful attempts only).

Labels:
    operation: Service operation name

Buckets: 5ms, 10ms, 25ms, 50ms, 100ms, 250ms, 500ms, 1s, 2.5s, +Inf
"""

# =============================================================================
# Money Metrics
# =============================================================================

negative_balances = Counter(
    "rentaly_negative_pending_balances_total",
    "Cancellations that pushed an owner's pending balance below zero",
)
"""Counter for pending balances crossing below zero (alert-only policy)."""

coupon_redemptions = Counter(
    "rentaly_coupon_redemptions_total",
    "Coupon redemption attempts, by outcome",
    ["outcome"],
)
"""
Counter for coupon redemptions.

Labels:
    outcome: success, or the rejection code (coupon_exhausted, already_applied, ...)
"""

# =============================================================================
# Outbox Metrics
# =============================================================================

outbox_dispatched = Counter(
    "rentaly_outbox_dispatched_total",
    "Outbox events handed to the notification webhook",
    ["event_type", "status"],
)
"""
Counter for outbox delivery attempts.

Labels:
    event_type: Event name (booking.confirmed, balance.negative, ...)
    status: sent, retry or failed
"""

# =============================================================================
# Cache Metrics
# =============================================================================

blocked_dates_cache_hits = Counter(
    "rentaly_blocked_dates_cache_hits_total",
    "Blocked-dates lookups served from the in-process cache",
)
"""Counter for blocked-dates cache hits."""

blocked_dates_cache_misses = Counter(
    "rentaly_blocked_dates_cache_misses_total",
    "Blocked-dates lookups that went to the database",
)
"""Counter for blocked-dates cache misses."""
