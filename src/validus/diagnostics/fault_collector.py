"""Rule fault collection for validus engines.

Collects exceptions raised by rule evaluate functions. A fault never escapes
validation (it turns into a synthetic invalid result), so this collector is
the side channel where the raised exception stays inspectable.
"""

import json
import logging
import traceback
import uuid
from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class RuleFault:
    """A single exception raised while evaluating a rule."""
    fault_id: str                    # Short unique identifier
    rule_id: str
    rule_name: str
    targets: list[str]
    sequence: int                    # Evaluation sequence number
    timestamp: str                   # ISO timestamp
    error_type: str                  # Exception class name
    message: str
    traceback_lines: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "fault_id": self.fault_id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "targets": self.targets,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "error_type": self.error_type,
            "message": self.message,
            "traceback_lines": self.traceback_lines,
        }

    def __str__(self) -> str:
        return f"[{self.fault_id}] {self.rule_name}: {self.error_type}: {self.message}"


class FaultCollector:
    """Keeps the most recent rule faults of one engine."""

    def __init__(self, max_faults: int = 1000):
        """Initialize fault collector.

        Args:
            max_faults: Number of faults kept; older ones are dropped first
        """
        self.max_faults = max_faults
        self.faults: list[RuleFault] = []
        self.dropped = 0

    def collect_fault(
        self,
        error: BaseException,
        rule_id: str,
        rule_name: str,
        targets: tuple[Hashable, ...],
        sequence: int,
    ) -> str:
        """Record a fault raised by a rule.

        Returns:
            Fault ID for reference
        """
        fault_id = str(uuid.uuid4())[:8]

        fault = RuleFault(
            fault_id=fault_id,
            rule_id=rule_id,
            rule_name=rule_name,
            targets=[str(target) for target in targets],
            sequence=sequence,
            timestamp=datetime.now(UTC).isoformat(),
            error_type=type(error).__name__,
            message=str(error),
            traceback_lines=traceback.format_exception(type(error), error, error.__traceback__),
        )

        self.faults.append(fault)
        if len(self.faults) > self.max_faults:
            overflow = len(self.faults) - self.max_faults
            del self.faults[:overflow]
            self.dropped += overflow

        logger.debug(f"Collected fault {fault_id}: {fault.error_type} - {fault.message}")
        return fault_id

    def has_faults(self) -> bool:
        return len(self.faults) > 0

    def get_fault_counts(self) -> dict[str, int]:
        """Get fault counts by rule name."""
        counts: dict[str, int] = {}
        for fault in self.faults:
            counts[fault.rule_name] = counts.get(fault.rule_name, 0) + 1
        return counts

    def clear(self) -> None:
        self.faults.clear()
        self.dropped = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": "1.0.0",
            "generated_at": datetime.now(UTC).isoformat(),
            "total_faults": len(self.faults),
            "dropped_faults": self.dropped,
            "faults_by_rule": self.get_fault_counts(),
            "faults": [fault.to_dict() for fault in self.faults],
        }

    def write_report(self, report_path: Path) -> Path | None:
        """Write collected faults as a JSON report.

        Returns:
            Path to the report, or None if no faults were collected
        """
        if not self.faults:
            logger.debug("No faults to report")
            return None

        report_path = Path(report_path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info(f"Wrote {len(self.faults)} rule faults to: {report_path}")
        return report_path
