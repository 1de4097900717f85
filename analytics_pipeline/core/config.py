"""
Worker configuration management.

Loads worker settings from a YAML file into Pydantic models and applies
environment variable overrides for connection details and secrets.

Expected YAML format:
```yaml
kafka:
  bootstrap_servers: localhost:9092
  topic: analytics-reports
  group_id: analytics-processor-group

database:
  host: localhost
  database: analytics

google:
  project_id: my-project
  bigquery_dataset: analytics_dataset

workers:
  data_processor:
    enabled: true
    schedule: "*/5 * * * *"
    max_messages_per_batch: 100
    store_in_firebase: true
    store_in_bigquery: true
  jdbc_sink:
    enabled: false
    schedule: "*/10 * * * *"
    jdbc_sink_url: http://jdbc-sink:8080
  report_fetch:
    enabled: false
    user_id: user-123
    property_id: "987654"
    dimensions: [country]
    metrics: [activeUsers, sessions]
```
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from analytics_pipeline.core.errors import ConfigurationError
from analytics_pipeline.core.schedule import validate_schedule


class KafkaSettings(BaseModel):
    bootstrap_servers: str = "localhost:9092"
    topic: str = "analytics-reports"
    group_id: str = "analytics-processor-group"
    consume_timeout_seconds: float = Field(default=120.0, gt=0)
    poll_timeout_seconds: float = Field(default=1.0, gt=0)
    producer_client_id: str = "analytics-producer"


class DatabaseSettings(BaseModel):
    host: str = "localhost"
    port: int = 5432
    database: str = "analytics"
    user: str = "pipeline"
    password: str | None = None
    min_size: int = 1
    max_size: int = 4
    timeout: float = 30.0


class GoogleSettings(BaseModel):
    project_id: str | None = None
    firestore_collection: str = "analytics_data"
    bigquery_dataset: str = "analytics_dataset"
    bigquery_table: str = "normalized_analytics_data"


class _WorkerConfig(BaseModel):
    enabled: bool = False
    schedule: str | None = None
    error_cooldown_seconds: float = Field(default=300.0, ge=0)

    @field_validator("schedule")
    @classmethod
    def check_schedule(cls, v: str | None) -> str | None:
        return validate_schedule(v)


class ProcessorWorkerConfig(_WorkerConfig):
    """Direct processor: PostgreSQL plus optional Firestore and BigQuery."""

    schedule: str | None = "*/5 * * * *"
    max_messages_per_batch: int = Field(default=100, gt=0)
    store_in_firebase: bool = True
    store_in_bigquery: bool = True
    record_empty_runs: bool = False


class JdbcSinkWorkerConfig(_WorkerConfig):
    """JDBC processor: PostgreSQL plus the external HTTP JDBC sink service."""

    schedule: str | None = "*/10 * * * *"
    max_messages_per_batch: int = Field(default=100, gt=0)
    jdbc_sink_url: str = ""
    jdbc_connection_string: str = ""
    jdbc_table_name: str = "normalized_analytics_data"
    record_empty_runs: bool = False


class ReportFetchWorkerConfig(_WorkerConfig):
    """Report fetch: credentials, report source and queue producer."""

    schedule: str | None = "0 0 * * *"
    user_id: str = ""
    property_id: str = ""
    dimensions: list[str] = Field(default_factory=list)
    metrics: list[str] = Field(default_factory=list)
    start_date: str = "30daysAgo"
    end_date: str = "today"
    credentials_url: str = ""
    report_source_url: str = ""


class WorkersConfig(BaseModel):
    data_processor: ProcessorWorkerConfig = Field(default_factory=ProcessorWorkerConfig)
    jdbc_sink: JdbcSinkWorkerConfig = Field(default_factory=JdbcSinkWorkerConfig)
    report_fetch: ReportFetchWorkerConfig = Field(default_factory=ReportFetchWorkerConfig)


class AppConfig(BaseModel):
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    workers: WorkersConfig = Field(default_factory=WorkersConfig)
    metrics_port: int | None = None


# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "DB_HOST": ("database", "host"),
    "DB_PORT": ("database", "port"),
    "DB_NAME": ("database", "database"),
    "DB_USER": ("database", "user"),
    "DB_PASSWORD": ("database", "password"),
    "KAFKA_BOOTSTRAP_SERVERS": ("kafka", "bootstrap_servers"),
    "KAFKA_TOPIC": ("kafka", "topic"),
    "KAFKA_GROUP_ID": ("kafka", "group_id"),
    "GOOGLE_PROJECT_ID": ("google", "project_id"),
    "METRICS_PORT": (None, "metrics_port"),
}


def apply_env_overrides(raw: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    """
    Overlay environment variables on a raw config dictionary.

    Args:
        raw: Parsed YAML content
        environ: Environment mapping (defaults to os.environ)

    Returns:
        New dictionary with overrides applied
    """
    environ = os.environ if environ is None else environ
    merged = {key: (dict(value) if isinstance(value, dict) else value) for key, value in raw.items()}

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        if section is None:
            merged[key] = value
        else:
            merged.setdefault(section, {})
            merged[section][key] = value

    return merged


def load_config(config_path: str | Path | None = None, environ: dict[str, str] | None = None) -> AppConfig:
    """
    Load and validate the application configuration.

    Args:
        config_path: Path to a YAML file; None uses defaults plus environment
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated AppConfig

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or fails validation
    """
    raw: dict[str, Any] = {}

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(path) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError("Configuration file must contain a mapping at top level")
        raw = loaded

    try:
        return AppConfig.model_validate(apply_env_overrides(raw, environ))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
