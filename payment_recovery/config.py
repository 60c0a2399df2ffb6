"""Configuration management for payment-recovery."""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any


@dataclass
class SchedulerConfig:
    """Retry scheduler configuration."""

    poll_interval_seconds: float = 30.0
    default_retry_interval: timedelta = field(default_factory=lambda: timedelta(days=7))
    escalate_on_missing_policy: bool = True


@dataclass
class MatchingConfig:
    """Weights and thresholds for suspense payment matching.

    Each signal contributes its weight to the composite confidence score,
    which is clamped to ``[0, 100]``.
    """

    exact_amount_weight: int = 40
    amount_range_weight: int = 25
    name_exact_weight: int = 45
    name_partial_weight: int = 25
    contact_weight: int = 20
    account_partial_weight: int = 20
    routing_weight: int = 10
    amount_tolerance: Decimal = Decimal("0.10")  # fraction of expected payment
    name_similarity_threshold: float = 0.6
    strong_threshold: int = 80  # strictly above is strong
    moderate_threshold: int = 60  # at or above is moderate
    min_confidence: int = 1


@dataclass
class BatchConfig:
    """Bulk payment validation and execution configuration."""

    max_amount: Decimal = Decimal("1000000")
    min_loan_number_length: int = 5
    routing_number_length: int = 9
    min_account_number_length: int = 4
    allowed_methods: tuple[str, ...] = ("ACH", "WIRE", "CHECK", "CARD")
    bank_detail_methods: tuple[str, ...] = ("ACH", "WIRE")
    reject_duplicates: bool = False
    max_workers: int = 1


@dataclass
class KafkaConfig:
    """Kafka producer configuration for notification events."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    topic: str = "loans.payment-recovery.notifications"

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": self.acks,
            "batch.size": self.batch_size,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
        }


@dataclass
class OutputConfig:
    """Export configuration."""

    export_dir: Path = field(default_factory=lambda: Path("output"))
    pretty_json: bool = False


@dataclass
class RecoveryConfig:
    """Main configuration for payment-recovery."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    log_level: str = "INFO"
    notifications_enabled: bool = False

    @classmethod
    def from_env(cls) -> "RecoveryConfig":
        """Create config from environment variables."""
        import os

        scheduler = SchedulerConfig(
            poll_interval_seconds=float(os.getenv("RECOVERY_POLL_INTERVAL", "30")),
            default_retry_interval=timedelta(
                hours=float(os.getenv("RECOVERY_DEFAULT_RETRY_HOURS", "168"))
            ),
        )

        matching = MatchingConfig(
            amount_tolerance=Decimal(os.getenv("RECOVERY_AMOUNT_TOLERANCE", "0.10")),
            min_confidence=int(os.getenv("RECOVERY_MIN_CONFIDENCE", "1")),
        )

        batch = BatchConfig(
            max_amount=Decimal(os.getenv("RECOVERY_BATCH_MAX_AMOUNT", "1000000")),
            reject_duplicates=os.getenv("RECOVERY_REJECT_DUPLICATES", "false").lower() == "true",
            max_workers=int(os.getenv("RECOVERY_BATCH_WORKERS", "1")),
        )

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            topic=os.getenv("KAFKA_NOTIFICATION_TOPIC", "loans.payment-recovery.notifications"),
        )

        output = OutputConfig(
            export_dir=Path(os.getenv("OUTPUT_DIR", "output")),
            pretty_json=os.getenv("PRETTY_JSON", "false").lower() == "true",
        )

        return cls(
            scheduler=scheduler,
            matching=matching,
            batch=batch,
            kafka=kafka,
            output=output,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            notifications_enabled=os.getenv("NOTIFICATIONS_ENABLED", "false").lower() == "true",
        )
