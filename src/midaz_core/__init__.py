"""
Resilient operation execution for the Midaz ledger client.

Subpackages:
    errors      - MidazError hierarchy and error classification
    resilience  - RetryPolicy and TransactionExecutor
    pagination  - CursorPaginator
    logging     - Structured logging
    telemetry   - Observability sinks (no-op and OpenTelemetry)
    metrics     - Prometheus counters and histograms
"""

__version__ = "0.1.0"
