"""Tests for publishing to Google Sheets and the offline fallback."""
import os
from unittest import mock

import gspread
import pandas as pd
import pytest
from openpyxl import load_workbook

from sheets_client import SheetsClient, REPORT_TAB, HISTORY_TAB

CREDENTIALS = '{"type": "service_account", "client_email": "bot@example.iam.gserviceaccount.com"}'
SHEET_URL = "https://docs.google.com/spreadsheets/d/abc123XYZ/edit"


@pytest.fixture
def report_df():
    return pd.DataFrame({
        "Developer": ["Ana", "Bo", "All Developers (Team)"],
        "Period": ["2024-03"] * 3,
        "Delivery Score": [70.0, 50.0, 60.0],
        "Quality Score": [90.0, 70.0, 80.0],
        "Overall Score": [80.0, 60.0, 70.0],
        "Trend": ["improving", "", ""],
    })


@pytest.fixture
def history_df():
    return pd.DataFrame({
        "Developer": ["Ana", "Ana"],
        "Period": ["2024-02", "2024-03"],
        "Overall Score": [75.0, 80.0],
    })


class TestOffline:
    """Tests for the local file fallback"""

    def test_no_credentials_saves_workbook(self, tmp_path, report_df, history_df):
        client = SheetsClient(credentials="", output_dir=str(tmp_path))
        assert client.client is None

        published = client.update_sheets(report_df, history_df, "2024-03")

        assert published is False
        workbook_path = tmp_path / "Developer KPI Report - 2024-03.xlsx"
        assert workbook_path.exists()
        assert (tmp_path / "Developer KPI Report - 2024-03.csv").exists()

        workbook = load_workbook(workbook_path)
        assert workbook.sheetnames == [REPORT_TAB, HISTORY_TAB]
        ranges = [str(rng.sqref) for rng in workbook[REPORT_TAB].conditional_formatting]
        assert ranges == ["E2:E4"]

    def test_missing_credentials_file(self, tmp_path):
        client = SheetsClient(credentials=str(tmp_path / "nope.json"), output_dir=str(tmp_path))
        assert client.client is None


class TestPublish:
    """Tests for uploads through gspread"""

    @pytest.fixture
    def gspread_client(self):
        with mock.patch("sheets_client.gspread.service_account_from_dict") as factory:
            factory.return_value = mock.MagicMock()
            yield factory.return_value

    def test_writes_both_tabs(self, tmp_path, gspread_client, report_df, history_df):
        spreadsheet = gspread_client.open_by_url.return_value
        client = SheetsClient(credentials=CREDENTIALS, sheet_url=SHEET_URL, output_dir=str(tmp_path))

        assert client.update_sheets(report_df, history_df, "2024-03") is True

        spreadsheet.worksheet.assert_any_call(REPORT_TAB)
        spreadsheet.worksheet.assert_any_call(HISTORY_TAB)
        header = spreadsheet.worksheet.return_value.update.call_args_list[0][0][0][0]
        assert header == list(report_df.columns)
        spreadsheet.batch_update.assert_called_once()
        assert not os.listdir(tmp_path)

    def test_color_scale_targets_overall_score(self, tmp_path, gspread_client, report_df, history_df):
        spreadsheet = gspread_client.open_by_url.return_value
        SheetsClient(credentials=CREDENTIALS, sheet_url=SHEET_URL, output_dir=str(tmp_path)).update_sheets(
            report_df, history_df, "2024-03"
        )
        request = spreadsheet.batch_update.call_args[0][0]["requests"][0]
        grid = request["addConditionalFormatRule"]["rule"]["ranges"][0]
        assert grid["startColumnIndex"] == 4
        assert grid["endRowIndex"] == 4

    def test_missing_tab_is_created(self, tmp_path, gspread_client, report_df, history_df):
        spreadsheet = gspread_client.open_by_url.return_value
        spreadsheet.worksheet.side_effect = gspread.WorksheetNotFound("missing")
        client = SheetsClient(credentials=CREDENTIALS, sheet_url=SHEET_URL, output_dir=str(tmp_path))

        client.update_sheets(report_df, history_df, "2024-03")

        titles = [c.kwargs["title"] for c in spreadsheet.add_worksheet.call_args_list]
        assert titles == [REPORT_TAB, HISTORY_TAB]

    def test_falls_back_to_sheet_id(self, tmp_path, gspread_client, report_df, history_df):
        gspread_client.open_by_url.side_effect = Exception("bad url")
        client = SheetsClient(credentials=CREDENTIALS, sheet_url=SHEET_URL, output_dir=str(tmp_path))

        assert client.update_sheets(report_df, history_df, "2024-03") is True
        gspread_client.open_by_key.assert_called_once_with("abc123XYZ")

    def test_upload_failure_saves_locally(self, tmp_path, gspread_client, report_df, history_df):
        gspread_client.open_by_url.side_effect = Exception("bad url")
        gspread_client.open_by_key.side_effect = Exception("forbidden")
        client = SheetsClient(credentials=CREDENTIALS, sheet_url=SHEET_URL, output_dir=str(tmp_path))

        assert client.update_sheets(report_df, history_df, "2024-03") is False
        assert (tmp_path / "Developer KPI Report - 2024-03.xlsx").exists()
