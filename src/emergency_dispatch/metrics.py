"""
Dispatch outcome sink and reporting.

The scheduler only writes into a MetricsSink; nothing here feeds back into
dispatch decisions.
"""

from __future__ import annotations

import io
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Protocol

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from emergency_dispatch.models import Incident

logger = logging.getLogger(__name__)

RECORD_COLUMNS = ["incident_id", "severity", "unit_id", "response_time", "path_distance", "algorithm", "timestamp"]


class MetricsSink(Protocol):
    def record_dispatch(
        self,
        incident_id: str,
        severity: int,
        unit_id: str,
        response_time: float,
        path_distance: float,
        algorithm: str,
    ) -> None:
        ...

    def record_failed_dispatch(self, incident: Incident) -> None:
        ...

    def record_algorithm_time(self, algorithm: str, nanoseconds: int) -> None:
        ...


class NullMetrics:
    def record_dispatch(self, incident_id, severity, unit_id, response_time, path_distance, algorithm) -> None:
        pass

    def record_failed_dispatch(self, incident: Incident) -> None:
        pass

    def record_algorithm_time(self, algorithm: str, nanoseconds: int) -> None:
        pass


@dataclass(frozen=True)
class DispatchRecord:
    incident_id: str
    severity: int
    unit_id: str
    response_time: float
    path_distance: float
    algorithm: str
    timestamp: int


@dataclass(frozen=True)
class AlgorithmStats:
    algorithm: str
    dispatch_count: int
    avg_response_time: float
    avg_distance: float
    avg_execution_ns: float


class PerformanceMetrics:
    def __init__(self) -> None:
        self.records: list[DispatchRecord] = []
        self.execution_ns: dict[str, int] = {}
        self.total_incidents = 0
        self.successful_dispatches = 0
        self.failed_dispatches = 0

    def record_dispatch(
        self,
        incident_id: str,
        severity: int,
        unit_id: str,
        response_time: float,
        path_distance: float,
        algorithm: str,
    ) -> None:
        self.records.append(
            DispatchRecord(
                incident_id=incident_id,
                severity=severity,
                unit_id=unit_id,
                response_time=response_time,
                path_distance=path_distance,
                algorithm=algorithm,
                timestamp=int(time.time() * 1000),
            )
        )
        self.total_incidents += 1
        self.successful_dispatches += 1

    def record_failed_dispatch(self, incident: Incident) -> None:
        self.total_incidents += 1
        self.failed_dispatches += 1

    def record_algorithm_time(self, algorithm: str, nanoseconds: int) -> None:
        self.execution_ns[algorithm] = self.execution_ns.get(algorithm, 0) + nanoseconds

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(r) for r in self.records], columns=RECORD_COLUMNS)

    @property
    def success_rate(self) -> float:
        if self.total_incidents == 0:
            return 0.0
        return self.successful_dispatches / self.total_incidents * 100.0

    @property
    def average_response_time(self) -> float:
        if not self.records:
            return 0.0
        return float(self.to_frame()["response_time"].mean())

    def average_response_time_by_severity(self) -> dict[int, float]:
        if not self.records:
            return {}
        means = self.to_frame().groupby("severity")["response_time"].mean()
        return {int(severity): float(value) for severity, value in means.items()}

    def algorithm_comparison(self) -> dict[str, AlgorithmStats]:
        if not self.records:
            return {}
        grouped = self.to_frame().groupby("algorithm").agg(
            dispatch_count=("incident_id", "count"),
            avg_response_time=("response_time", "mean"),
            avg_distance=("path_distance", "mean"),
        )
        stats = {}
        for algorithm, row in grouped.iterrows():
            count = int(row["dispatch_count"])
            stats[algorithm] = AlgorithmStats(
                algorithm=algorithm,
                dispatch_count=count,
                avg_response_time=float(row["avg_response_time"]),
                avg_distance=float(row["avg_distance"]),
                avg_execution_ns=self.execution_ns.get(algorithm, 0) / max(1, count),
            )
        return stats

    def generate_report(self) -> str:
        lines = [
            "=== Performance Metrics Report ===",
            f"Total incidents:        {self.total_incidents}",
            f"Successful dispatches:  {self.successful_dispatches}",
            f"Failed dispatches:      {self.failed_dispatches}",
            f"Success rate:           {self.success_rate:.2f}%",
            f"Average response time:  {self.average_response_time:.2f} minutes",
            "",
            "Response time by severity:",
        ]
        by_severity = self.average_response_time_by_severity()
        for severity in sorted(by_severity, reverse=True):
            lines.append(f"  Severity {severity}: {by_severity[severity]:.2f} minutes")

        lines += ["", "Algorithm comparison:"]
        for stats in self.algorithm_comparison().values():
            lines += [
                f"  {stats.algorithm}:",
                f"    Dispatches:      {stats.dispatch_count}",
                f"    Avg time:        {stats.avg_response_time:.2f} min",
                f"    Avg distance:    {stats.avg_distance:.2f} km",
                f"    Execution time:  {stats.avg_execution_ns / 1_000_000:.3f} ms",
            ]

        if len(self.records) >= 5:
            lines += ["", "Last 5 dispatches:"]
            for record in self.records[-5:]:
                lines.append(
                    f"  Incident {record.incident_id}: {record.response_time:.2f} min (severity {record.severity})"
                )
        return "\n".join(lines)

    def export_csv(self, path: Optional[Path] = None) -> str:
        text = self.to_frame().to_csv(index=False, float_format="%.2f")
        if path is not None:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
            logger.info(f"Wrote {len(self.records)} dispatch records to {path}")
        return text

    def export_pdf(self) -> bytes:
        buff = io.BytesIO()
        pdf = canvas.Canvas(buff, pagesize=letter)
        width, height = letter

        y = height - 40
        pdf.setFont("Helvetica-Bold", 14)
        pdf.drawString(40, y, "Dispatch Performance Summary")
        y -= 18
        pdf.setFont("Helvetica", 10)
        pdf.drawString(
            40,
            y,
            f"Incidents: {self.total_incidents} | Success rate: {self.success_rate:.2f}% | "
            f"Avg response: {self.average_response_time:.2f} min",
        )
        y -= 20

        for record in self.records:
            if y < 80:
                pdf.showPage()
                y = height - 40

            pdf.setStrokeColor(colors.darkblue)
            pdf.rect(35, y - 35, width - 70, 30, stroke=1, fill=0)
            pdf.setFont("Helvetica-Bold", 10)
            pdf.drawString(45, y - 17, f"{record.incident_id} | severity {record.severity} | unit {record.unit_id}")
            pdf.setFont("Helvetica", 9)
            pdf.drawString(
                45,
                y - 29,
                f"{record.response_time:.2f} min | {record.path_distance:.2f} km | {record.algorithm}",
            )
            y -= 40

        pdf.save()
        buff.seek(0)
        return buff.read()
