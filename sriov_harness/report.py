# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Scenario outcome reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from rich.console import Console
from rich.table import Table

from sriov_harness import console as default_console


class Outcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    DIAGNOSTIC = "diagnostic"


_STYLES = {
    Outcome.PASSED: "[green]✅ {}[/green]",
    Outcome.FAILED: "[red]❌ {}[/red]",
    Outcome.SKIPPED: "[yellow]⏭️  {}[/yellow]",
    Outcome.DIAGNOSTIC: "[dim]ℹ️  {}[/dim]",
}


@dataclass(frozen=True)
class ReportRecord:
    scenario: str
    outcome: Outcome
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ReportSink(Protocol):
    """Destination for scenario records; the core never reads them back."""

    def record(self, record: ReportRecord) -> None:
        ...


class ConsoleReportSink:
    """Prints each record as it arrives and a summary table on demand."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or default_console
        self._records: list[ReportRecord] = []

    def record(self, record: ReportRecord) -> None:
        self._records.append(record)
        text = f"{record.scenario}: {record.message}" if record.message else record.scenario
        self.console.print(_STYLES[record.outcome].format(text))

    def summary(self) -> None:
        table = Table(title="Scenario results")
        table.add_column("Scenario")
        table.add_column("Outcome")
        table.add_column("Message")
        for record in self._records:
            if record.outcome is Outcome.DIAGNOSTIC:
                continue
            table.add_row(record.scenario, record.outcome.value, record.message)
        self.console.print(table)


class CollectingReportSink:
    """Keeps records in memory; used by tests."""

    def __init__(self) -> None:
        self.records: list[ReportRecord] = []

    def record(self, record: ReportRecord) -> None:
        self.records.append(record)

    def outcomes(self) -> list[Outcome]:
        return [r.outcome for r in self.records]
