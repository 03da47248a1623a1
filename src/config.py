"""Configuration module for the Developer KPI Tracker."""
import os
from dotenv import load_dotenv

# Load Environment Variables
load_dotenv()

# Storage Configuration
DATABASE_URL = os.getenv("KPI_DATABASE_URL", "sqlite:///kpi_tracker.db")
DB_ECHO = os.getenv("KPI_DB_ECHO", "false").lower() == "true"
KPI_CONFIG_PATH = os.getenv("KPI_CONFIG_PATH", "kpi_config.json")
OUTPUT_DIR = os.getenv("KPI_OUTPUT_DIR", "output")

# Google Sheets Configuration
GOOGLE_CREDENTIALS_JSON = os.getenv("GOOGLE_CREDENTIALS_JSON")
GOOGLE_SHEET_URL = os.getenv("GOOGLE_SHEET_URL")
SHEET_NAME = "Developer KPI Report"

# Team report generation
TEAM_WORKERS = int(os.getenv("KPI_TEAM_WORKERS", "4"))
TEAM_DEVELOPER_ID = "all"

# ============================================================
# SCORING CONFIGURATION - Defaults for every adjustable value
# ============================================================
#
# These are the values used when no kpi_config.json exists yet.
# Runtime changes go through kpi_config.ConfigStore, which validates them.
#

# Overall Score Weights (must sum to 1.0)
DEFAULT_DELIVERY_WEIGHT = 0.5
DEFAULT_QUALITY_WEIGHT = 0.5
WEIGHT_SUM_TOLERANCE = 0.01

# Developer error bug penalties (points deducted per bug, by severity)
DEFAULT_BUG_PENALTIES = {
    "critical": 15.0,
    "high": 10.0,
    "medium": 5.0,
    "low": 2.0,
}

# Conceptual bugs get a "minor" deduction relative to developer errors.
# Placeholder ratio until product confirms the intended weighting.
CONCEPTUAL_PENALTY_RATIO = 0.5
DEFAULT_CONCEPTUAL_PENALTIES = {
    severity: points * CONCEPTUAL_PENALTY_RATIO
    for severity, points in DEFAULT_BUG_PENALTIES.items()
}

# Delivery Score Adjustments
DEFAULT_REOPEN_PENALTY = 5.0          # Points deducted per reopened ticket
DEFAULT_EARLY_DELIVERY_BONUS = 0.0    # Points per ticket completed > 1 day early (disabled)
DEFAULT_LATE_CRITICAL_PENALTY = 0.0   # Points per late ticket of critical complexity (disabled)
EARLY_DELIVERY_MARGIN_DAYS = 1

# Trend Classification
TREND_WINDOW = 3                      # Periods per averaging window
TREND_THRESHOLD = 5.0                 # Points of difference between windows
TREND_MIN_PERIODS = TREND_WINDOW + 1  # Need a non-empty older window

# Score Bounds
SCORE_MIN = 0.0
SCORE_MAX = 100.0

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
