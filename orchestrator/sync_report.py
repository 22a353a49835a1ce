"""
Sync report generator for run statistics.

Builds a report dictionary from the run's counters, formats it for console
display and exports it to JSON.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from models import SyncState, SyncStats

logger = logging.getLogger('bookstack_wikijs_sync.orchestrator.sync_report')


class SyncReport:
    """Generates the end-of-run statistics summary."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.orchestrator.sync_report')

    def generate_report(
        self,
        stats: SyncStats,
        duration: float,
        dry_run: bool = False,
        state: Optional[SyncState] = None,
        status: str = 'completed'
    ) -> Dict[str, Any]:
        """
        Generate the report dictionary.

        Args:
            stats: Counters of the run
            duration: Run duration in seconds
            dry_run: Whether the run was a dry run
            state: Sync state after the run (optional)
            status: Final status ('completed', 'failed', 'cancelled')

        Returns:
            Report dictionary
        """
        report = {
            'status': status,
            'dry_run': dry_run,
            'statistics': stats.to_dict(),
            'duration_seconds': round(duration, 2),
            'duration_formatted': self._format_duration(duration),
            'timestamp': datetime.now().isoformat()
        }

        if state is not None:
            report['state'] = {
                'last_sync': state.last_sync,
                'pages_tracked': len(state.page_map),
                'assets_tracked': len(state.asset_map),
                'users_mapped': len(state.user_map)
            }

        return report

    def _format_duration(self, seconds: float) -> str:
        """Format duration as human-readable string."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        minutes, secs = divmod(int(seconds), 60)
        if minutes < 60:
            return f"{minutes}m {secs}s"
        hours, minutes = divmod(minutes, 60)
        return f"{hours}h {minutes}m {secs}s"

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """
        Format report for console display.

        Args:
            report: Report dictionary

        Returns:
            Formatted console string
        """
        stats = report.get('statistics', {})
        title = "SYNC REPORT (DRY RUN)" if report.get('dry_run') else "SYNC REPORT"

        sections = [
            "=" * 60,
            title,
            "=" * 60,
            f"  Status:              {report.get('status', 'unknown')}",
            f"  Duration:            {report.get('duration_formatted', '0s')}",
            "",
            f"  Pages Created:       {stats.get('pages_created', 0)}",
            f"  Pages Updated:       {stats.get('pages_updated', 0)}",
            f"  Pages Skipped:       {stats.get('pages_skipped', 0)}",
            f"  Assets Uploaded:     {stats.get('assets_uploaded', 0)}",
            f"  Assets Reused:       {stats.get('assets_skipped', 0)}",
            f"  User Mapping Errors: {stats.get('user_mapping_errors', 0)}",
            f"  Total Errors:        {stats.get('errors', 0)}"
        ]

        state = report.get('state')
        if state:
            sections.append("")
            sections.append(
                f"  Tracked: {state['pages_tracked']} pages, {state['assets_tracked']} assets, "
                f"{state['users_mapped']} users"
            )

        sections.append("=" * 60)
        return "\n".join(sections)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export report to JSON file.

        Args:
            report: Report dictionary
            filepath: Output file path
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)

            self.logger.info(f"JSON report exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {str(e)}")


__all__ = ['SyncReport']
