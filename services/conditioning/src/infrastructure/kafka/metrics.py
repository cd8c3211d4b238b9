from prometheus_client import Counter, Gauge

# Kafka consumption
KAFKA_RECORDS_TOTAL = Counter(
    "conditioning_kafka_records_total", "Total change event records consumed."
)
KAFKA_INVALID_RECORDS_TOTAL = Counter(
    "conditioning_kafka_invalid_records_total",
    "Change event records skipped as malformed.",
)
KAFKA_COMMITS_TOTAL = Counter(
    "conditioning_kafka_commits_total", "Offset commits after dispatch."
)
KAFKA_CONSUMER_RUNNING = Gauge(
    "conditioning_kafka_consumer_running", "1 while the change event consumer runs."
)
