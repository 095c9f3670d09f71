# constants/sheets.py

# Header written to every sheet the bot creates
HEADER_ROW = ["Company", "Product", "Count", "Slack_TS", "Written_At", "Remarks"]

# Column positions (0-based) inside a StoreRow
COMPANY_COL = 0
PRODUCT_COL = 1
COUNT_COL = 2
SLACK_TS_COL = 3
WRITTEN_AT_COL = 4
REMARKS_COL = 5

# Prefix that makes Sheets keep the Slack ts as text instead of a rounded number
LITERAL_PREFIX = "'"

# Used only when a spreadsheet somehow has no sheets at all
DEFAULT_MASTER_SHEET = "Orders"

WRITTEN_AT_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_TIMEZONE = "Asia/Seoul"
