"""Transfer configuration models."""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

PASSWORD_ENV_VAR = "DBMIGRATE_TARGET_PASSWORD"


@dataclass
class TargetConnectionConfig:
    """Connection settings for the target MySQL server."""
    host: str = "localhost"
    port: int = 3306
    user: str = ""
    password: str = ""
    database: str = ""
    connect_timeout: int = 10

    def validate(self) -> List[str]:
        """
        Validate the connection settings.

        Returns:
            List of validation error messages
        """
        errors = []

        if not self.host or not self.host.strip():
            errors.append("Target host is required")

        if not self.user or not self.user.strip():
            errors.append("Target user is required")

        if not self.database or not self.database.strip():
            errors.append("Target database name is required")

        if not 0 < self.port < 65536:
            errors.append(f"Target port out of range: {self.port}")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (password omitted)."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "database": self.database,
            "connect_timeout": self.connect_timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetConnectionConfig":
        """Create from dictionary representation."""
        return cls(
            host=data.get("host", "localhost"),
            port=int(data.get("port", 3306)),
            user=data.get("user", ""),
            password=data.get("password") or os.environ.get(PASSWORD_ENV_VAR, ""),
            database=data.get("database", ""),
            connect_timeout=int(data.get("connect_timeout", 10)),
        )


@dataclass
class RetryPolicy:
    """Automatic retry policy for retryable failures."""
    max_attempts: int = 1  # 1 means failures are left for the operator
    backoff_seconds: float = 1.0
    backoff_factor: float = 2.0
    timeout_batch_factor: float = 0.5  # Batch size multiplier after a timeout
    min_batch_size: int = 10

    def backoff_for(self, attempt: int) -> float:
        """Delay before re-running an item whose ``attempt`` just failed."""
        return self.backoff_seconds * (self.backoff_factor ** max(attempt - 1, 0))

    def reduced_batch_size(self, batch_size: int) -> int:
        """Batch size to use after a timeout."""
        return max(self.min_batch_size, int(batch_size * self.timeout_batch_factor))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "max_attempts": self.max_attempts,
            "backoff_seconds": self.backoff_seconds,
            "backoff_factor": self.backoff_factor,
            "timeout_batch_factor": self.timeout_batch_factor,
            "min_batch_size": self.min_batch_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        """Create from dictionary representation."""
        return cls(
            max_attempts=int(data.get("max_attempts", 1)),
            backoff_seconds=float(data.get("backoff_seconds", 1.0)),
            backoff_factor=float(data.get("backoff_factor", 2.0)),
            timeout_batch_factor=float(data.get("timeout_batch_factor", 0.5)),
            min_batch_size=int(data.get("min_batch_size", 10)),
        )


@dataclass
class TransferConfig:
    """Configuration for a transfer run."""
    name: str = "transfer"
    description: str = ""

    # Source and target
    source: str = ""  # ODBC connection string or path to an .mdb/.accdb file
    catalog_file: Optional[str] = None  # JSON catalog instead of live introspection
    target: TargetConnectionConfig = field(default_factory=TargetConnectionConfig)

    # Selection
    selection: List[str] = field(default_factory=list)
    routine_definitions: Dict[str, str] = field(default_factory=dict)  # Name -> SQL

    # Execution options
    concurrency: int = 1
    batch_size: int = 500
    batch_timeout: float = 30.0  # Seconds per batch
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    dry_run: bool = False
    drop_existing: bool = True

    # Output
    output_dir: str = "./data"
    save_report: bool = True
    webhook_url: Optional[str] = None

    def validate(self) -> List[str]:
        """Validate the run configuration."""
        errors = []

        if not self.source and not self.catalog_file:
            errors.append("Either a source database or a catalog file is required")

        if self.concurrency < 1:
            errors.append(f"Concurrency must be at least 1, got {self.concurrency}")

        if self.batch_size < 1:
            errors.append(f"Batch size must be at least 1, got {self.batch_size}")

        if self.batch_timeout <= 0:
            errors.append(f"Batch timeout must be positive, got {self.batch_timeout}")

        if self.retry.max_attempts < 1:
            errors.append(f"Retry max_attempts must be at least 1, got {self.retry.max_attempts}")

        if not self.dry_run:
            errors.extend(self.target.validate())

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "catalog_file": self.catalog_file,
            "target": self.target.to_dict(),
            "selection": list(self.selection),
            "routine_definitions": self.routine_definitions,
            "concurrency": self.concurrency,
            "batch_size": self.batch_size,
            "batch_timeout": self.batch_timeout,
            "retry": self.retry.to_dict(),
            "dry_run": self.dry_run,
            "drop_existing": self.drop_existing,
            "output_dir": self.output_dir,
            "save_report": self.save_report,
            "webhook_url": self.webhook_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferConfig":
        """Create from dictionary representation."""
        return cls(
            name=data.get("name", "transfer"),
            description=data.get("description", ""),
            source=data.get("source", ""),
            catalog_file=data.get("catalog_file"),
            target=TargetConnectionConfig.from_dict(data.get("target", {})),
            selection=list(data.get("selection", [])),
            routine_definitions=data.get("routine_definitions", {}),
            concurrency=int(data.get("concurrency", 1)),
            batch_size=int(data.get("batch_size", 500)),
            batch_timeout=float(data.get("batch_timeout", 30.0)),
            retry=RetryPolicy.from_dict(data.get("retry", {})),
            dry_run=data.get("dry_run", False),
            drop_existing=data.get("drop_existing", True),
            output_dir=data.get("output_dir", "./data"),
            save_report=data.get("save_report", True),
            webhook_url=data.get("webhook_url"),
        )

    @classmethod
    def from_json_file(cls, path: str) -> "TransferConfig":
        """Load configuration from a JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))
