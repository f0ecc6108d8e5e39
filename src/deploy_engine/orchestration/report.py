"""Run summary output."""
import json
import logging
from pathlib import Path
from typing import Optional

from deploy_engine.core.report import ConvergenceReport

logger = logging.getLogger(__name__)


def print_summary(report: ConvergenceReport) -> None:
    """Log the deployment summary."""
    logger.info("=" * 60)
    logger.info("🎉 DEPLOYMENT SUMMARY" if report.succeeded else "❌ DEPLOYMENT SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Mode: {report.mode}")
    status = "success" if report.succeeded else "failed"
    if report.succeeded and report.degraded:
        status = "success (degraded)"
    logger.info(f"Status: {status}")
    if report.duration is not None:
        logger.info(f"Duration: {report.duration:.1f}s")

    for resource in report.resources:
        details = ", ".join(f"{k}={v}" for k, v in resource.attributes.items() if v and k != "state")
        logger.info(f"{resource.kind.value} {resource.name}: {resource.state.value} "
                    f"({resource.identity or 'no identity'}){' ' + details if details else ''}")

    for result in report.bindings:
        suffix = " [degraded]" if result.degraded else ""
        logger.info(f"Binding {result.binding.source.name} -> {result.binding.target.name}:"
                    f"{result.binding.port}: {result.binding.state.value}{suffix}")

    for result in report.health:
        icon = "✅" if result.healthy else "❌"
        logger.info(f"{icon} Health {result.name}: {result.endpoint.url} {result.outcome.value} "
                    f"after {result.attempts_made} attempts")

    for warning in report.warnings:
        logger.warning(f"⚠️ {warning}")
    for error in report.errors:
        logger.error(f"❌ {error}")
    logger.info("=" * 60)


def export_report(report: ConvergenceReport, export_file: str) -> Optional[Path]:
    """Write the report as JSON for later inspection."""
    path = Path(export_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2, default=str)
    logger.info(f"📄 Deployment report written to {path}")
    return path
