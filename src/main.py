import argparse
import datetime
import logging
import os
from database import DatabaseManager
from errors import KPIError
from kpi_config import ConfigStore
from kpi_history import KPIHistory, aggregate_team_kpis
from models import validate_period
from repository import TrackerRepository
from report_exporter import export_monthly_kpi_csv, build_report_frame, build_history_frame
from sheets_client import SheetsClient

# Setup Logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class KPIReportApp:
    """Main orchestrator for the monthly developer KPI report."""

    def __init__(self, database_url=None, config_path=None, sheets_client=None):
        """Initialize storage, KPI history and the Sheets client."""
        self.db = DatabaseManager(database_url)
        self.db.create_tables()
        self.repository = TrackerRepository(self.db)
        self.history = KPIHistory(self.repository, config_store=ConfigStore(config_path))
        self.sheets_client = sheets_client

    def generate_snapshots(self, month, year):
        """Generate and store the month's KPI for every active developer.

        Returns:
            List of stored snapshots; developers that fail are skipped
        """
        snapshots = []
        for developer in self.repository.list_developers():
            try:
                snapshots.append(self.history.generate_monthly_kpi(developer.id, month, year))
            except Exception as e:
                logger.warning(f"Error generating KPI for {developer.name} ({developer.id}): {e}")
        return snapshots

    def run(self, month, year, developer_id=None, csv_path=None, publish=True):
        """Run the complete monthly report process."""
        validate_period(month, year)
        period_label = f"{year:04d}-{month:02d}"
        logger.info(f"Starting KPI report for {period_label}...")

        # 1. Generate per-developer snapshots
        snapshots = self.generate_snapshots(month, year)
        if not snapshots:
            logger.warning("No KPI snapshots generated. Exiting.")
            return None

        # 2. Team roll-up
        team = aggregate_team_kpis(snapshots, month, year)

        # 3. CSV export
        if csv_path:
            report_csv = export_monthly_kpi_csv(self.history, developer_id, month, year)
            csv_dir = os.path.dirname(csv_path)
            if csv_dir:
                os.makedirs(csv_dir, exist_ok=True)
            with open(csv_path, "w", encoding="utf-8", newline="") as f:
                f.write(report_csv)
            logger.info(f"Exported CSV report to {csv_path}")

        # 4. Publish to Google Sheets (or local files)
        names = {dev.id: dev.name for dev in self.repository.list_developers(include_inactive=True)}
        report_df = build_report_frame(snapshots, team=team, developer_names=names)
        if publish:
            history_snapshots = [
                kpi for dev_id in names for kpi in self.history.get_kpi_history(dev_id)
            ]
            history_df = build_history_frame(history_snapshots, developer_names=names)
            sheets_client = self.sheets_client or SheetsClient()
            sheets_client.update_sheets(report_df, history_df, period_label)

        logger.info("Done.")
        return report_df


def parse_args(argv=None):
    today = datetime.date.today()
    parser = argparse.ArgumentParser(description="Generate the monthly developer KPI report")
    parser.add_argument("--month", type=int, default=today.month, help="Report month (1-12)")
    parser.add_argument("--year", type=int, default=today.year, help="Report year")
    parser.add_argument("--developer", default=None, help="Developer id for the CSV export (default: team)")
    parser.add_argument("--csv", default=None, help="Write the CSV report to this path")
    parser.add_argument("--no-publish", action="store_true", help="Skip Google Sheets / local Excel output")
    parser.add_argument("--database-url", default=None, help="Override KPI_DATABASE_URL")
    parser.add_argument("--config", default=None, help="Override KPI_CONFIG_PATH")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logger.info(f"Running KPI report for {args.year}-{args.month:02d}")

    app = KPIReportApp(database_url=args.database_url, config_path=args.config)
    try:
        app.run(
            month=args.month,
            year=args.year,
            developer_id=args.developer,
            csv_path=args.csv,
            publish=not args.no_publish,
        )
    except KPIError as e:
        logger.error(f"KPI report failed: {e}")
        return 1
    finally:
        app.db.dispose()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
