"""Google Sheets client module for publishing KPI reports."""
import os
import re
import json
import logging
import pandas as pd
import gspread
from openpyxl.formatting.rule import ColorScaleRule
from openpyxl.utils import get_column_letter
from config import GOOGLE_CREDENTIALS_JSON, GOOGLE_SHEET_URL, SHEET_NAME, OUTPUT_DIR

logger = logging.getLogger(__name__)

REPORT_TAB = "Monthly_KPI"
HISTORY_TAB = "KPI_History"
SCORE_COLUMN = "Overall Score"
MAX_COLUMN_WIDTH = 50


class SheetsClient:
    """Handles Google Sheets connection and report uploads."""

    def __init__(self, credentials=None, sheet_url=None, output_dir=None):
        """Initialize Google Sheets client.

        Args:
            credentials: Service account JSON string or path, defaults to GOOGLE_CREDENTIALS_JSON
            sheet_url: Target spreadsheet URL, defaults to GOOGLE_SHEET_URL
            output_dir: Directory for offline files, defaults to OUTPUT_DIR
        """
        self.credentials = credentials if credentials is not None else GOOGLE_CREDENTIALS_JSON
        self.sheet_url = sheet_url if sheet_url is not None else GOOGLE_SHEET_URL
        self.output_dir = output_dir or OUTPUT_DIR
        self.client = self._connect()

    def _connect(self):
        """Connect to Google Sheets with service account credentials.

        Returns:
            gspread client, or None to run in offline mode
        """
        if self.credentials:
            try:
                logger.info("Attempting to use Service Account credentials...")
                if self.credentials.strip().startswith("{"):
                    return gspread.service_account_from_dict(json.loads(self.credentials))
                elif os.path.exists(self.credentials):
                    return gspread.service_account(filename=self.credentials)
                else:
                    logger.error(f"Service account file not found: {self.credentials}")
            except Exception as e:
                logger.error(f"Failed to use Service Account credentials: {e}")

        logger.warning("No Google Sheets access - running in offline mode")
        logger.info(f"Reports will be saved under: {self.output_dir}")
        return None

    def _open_spreadsheet(self):
        if self.sheet_url:
            try:
                return self.client.open_by_url(self.sheet_url)
            except Exception as e:
                logger.error(f"Failed to open sheet by URL: {e}")
                match = re.search(r'/d/([a-zA-Z0-9-_]+)', self.sheet_url)
                if not match:
                    raise
                logger.info(f"Trying to open by extracted ID: {match.group(1)}")
                return self.client.open_by_key(match.group(1))

        try:
            return self.client.open(SHEET_NAME)
        except gspread.SpreadsheetNotFound:
            logger.info(f"Spreadsheet '{SHEET_NAME}' not found. Creating it.")
            return self.client.create(SHEET_NAME)

    @staticmethod
    def _write_tab(spreadsheet, title, dataframe):
        try:
            worksheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            worksheet = spreadsheet.add_worksheet(
                title=title, rows=max(len(dataframe) + 1, 100), cols=max(len(dataframe.columns), 5)
            )
        worksheet.clear()
        values = dataframe.astype(object).where(pd.notna(dataframe), "").values.tolist()
        worksheet.update([dataframe.columns.values.tolist()] + values)
        return worksheet

    def update_sheets(self, report_df: pd.DataFrame, history_df: pd.DataFrame, period_label: str) -> bool:
        """Write the monthly report and score history to Google Sheets.

        Falls back to local Excel/CSV files when offline or when the upload fails.

        Args:
            report_df: Monthly report, one row per developer plus the team row
            history_df: Score history across all stored periods
            period_label: Period being reported, e.g. "2024-03"

        Returns:
            True if the report reached Google Sheets
        """
        if not self.client:
            logger.warning("Google Sheets client is not connected. Saving to local files instead...")
            self._save_local_files(report_df, history_df, period_label)
            return False

        try:
            spreadsheet = self._open_spreadsheet()
            report_ws = self._write_tab(spreadsheet, REPORT_TAB, report_df)
            self._write_tab(spreadsheet, HISTORY_TAB, history_df)
            self._apply_color_scale(spreadsheet, report_ws, report_df)
            logger.info(f"Successfully updated Google Sheets for {period_label}.")
            return True
        except Exception as e:
            logger.error(f"Failed to update Google Sheets: {e}")
            self._save_local_files(report_df, history_df, period_label)
            return False

    def _apply_color_scale(self, spreadsheet, worksheet, dataframe):
        """Apply a red-yellow-green color scale to the Overall Score column."""
        if SCORE_COLUMN not in dataframe.columns:
            return
        column_index = dataframe.columns.get_loc(SCORE_COLUMN)
        try:
            requests = [{
                "addConditionalFormatRule": {
                    "rule": {
                        "ranges": [{
                            "sheetId": worksheet.id,
                            "startRowIndex": 1,  # Start after header
                            "endRowIndex": len(dataframe) + 1,
                            "startColumnIndex": column_index,
                            "endColumnIndex": column_index + 1
                        }],
                        "gradientRule": {
                            "minpoint": {
                                "color": {"red": 0.957, "green": 0.427, "blue": 0.427},
                                "type": "MIN"
                            },
                            "midpoint": {
                                "color": {"red": 1.0, "green": 0.902, "blue": 0.6},
                                "type": "PERCENTILE",
                                "value": "50"
                            },
                            "maxpoint": {
                                "color": {"red": 0.573, "green": 0.816, "blue": 0.518},
                                "type": "MAX"
                            }
                        }
                    },
                    "index": 0
                }
            }]
            spreadsheet.batch_update({"requests": requests})
            logger.info("Applied color scale to Overall Score column")
        except Exception as e:
            logger.warning(f"Could not apply color scale: {e}")

    @staticmethod
    def _autosize_columns(worksheet):
        for column in worksheet.columns:
            lengths = [len(str(cell.value)) for cell in column if cell.value is not None]
            width = min(max(lengths, default=0) + 2, MAX_COLUMN_WIDTH)
            worksheet.column_dimensions[column[0].column_letter].width = width

    def _save_local_files(self, report_df: pd.DataFrame, history_df: pd.DataFrame, period_label: str):
        """Save the report locally when Google Sheets is unavailable.

        Writes an Excel workbook with both tabs (color scale on Overall Score)
        and a CSV copy of the monthly report.

        Returns:
            Path of the Excel workbook, or None if saving failed
        """
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            output_file = os.path.join(self.output_dir, f"{SHEET_NAME} - {period_label}.xlsx")

            with pd.ExcelWriter(output_file, engine='openpyxl') as writer:
                report_df.to_excel(writer, sheet_name=REPORT_TAB, index=False)
                history_df.to_excel(writer, sheet_name=HISTORY_TAB, index=False)

                report_ws = writer.sheets[REPORT_TAB]
                if SCORE_COLUMN in report_df.columns and len(report_df) > 0:
                    letter = get_column_letter(report_df.columns.get_loc(SCORE_COLUMN) + 1)
                    color_scale = ColorScaleRule(
                        start_type='min', start_color='F4B4B4',
                        mid_type='percentile', mid_value=50, mid_color='FFE699',
                        end_type='max', end_color='92D192'
                    )
                    report_ws.conditional_formatting.add(f'{letter}2:{letter}{len(report_df) + 1}', color_scale)

                self._autosize_columns(report_ws)
                self._autosize_columns(writer.sheets[HISTORY_TAB])

            logger.info(f"Saved to Excel file: {output_file}")

            csv_file = os.path.join(self.output_dir, f"{SHEET_NAME} - {period_label}.csv")
            report_df.to_csv(csv_file, index=False)
            logger.info(f"Saved report data to: {csv_file}")
            return output_file

        except Exception as e:
            logger.error(f"Failed to save local files: {e}")
            return None
