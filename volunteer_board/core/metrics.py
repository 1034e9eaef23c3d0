# volunteer_board/core/metrics.py
"""Prometheus counters for board activity"""
from prometheus_client import Counter

TASK_TRANSITIONS = Counter(
    'board_task_transitions_total',
    'Task lifecycle operations applied',
    ['operation']
)

MINUTES_CREDITED = Counter(
    'board_minutes_credited_total',
    'Minutes credited to volunteers'
)

COMPLETIONS_RECORDED = Counter(
    'board_completions_total',
    'Completion records written'
)

PARTIAL_COMPLETIONS = Counter(
    'board_partial_completions_total',
    'Completions aborted after crediting some volunteers'
)

NOTIFICATION_FAILURES = Counter(
    'board_notification_failures_total',
    'Announcements that failed or timed out',
    ['kind']
)
