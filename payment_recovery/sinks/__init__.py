"""Output sinks for exports and event publishing."""

from payment_recovery.sinks.csv_file import CsvFileSink
from payment_recovery.sinks.export import EXPORT_FORMATS, export_batch_results, result_row
from payment_recovery.sinks.json_file import JsonFileSink
from payment_recovery.sinks.kafka import KafkaNotificationService, KafkaSink, ProducerStats

__all__ = [
    "EXPORT_FORMATS",
    "CsvFileSink",
    "JsonFileSink",
    "KafkaNotificationService",
    "KafkaSink",
    "ProducerStats",
    "export_batch_results",
    "result_row",
]
