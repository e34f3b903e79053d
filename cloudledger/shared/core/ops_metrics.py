from prometheus_client import Counter, Histogram

UNIT_RUNS = Counter(
    "cloudledger_unit_runs_total",
    "Total number of orchestrated unit executions",
    ["unit", "status"],
)

UNIT_DURATION = Histogram(
    "cloudledger_unit_duration_seconds",
    "Duration of orchestrated unit executions in seconds",
    ["unit"],
    buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
)

INVENTORY_RECORDS = Counter(
    "cloudledger_inventory_records_total",
    "Inventory records processed, by diff outcome",
    ["resource_type", "outcome"],
)

INVENTORY_REAPED = Counter(
    "cloudledger_inventory_reaped_total",
    "Snapshot rows tombstoned by the stale reaper",
    ["resource_type"],
)

FETCH_PAGES = Counter(
    "cloudledger_fetch_pages_total",
    "Pages requested from provider APIs",
    ["source"],
)
