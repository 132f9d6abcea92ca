"""
Excel Exporter Module
---------------------
Exports screenshot records to a formatted Excel review sheet.
Features:
  • Styled header row with colored background
  • Auto-fit column widths
  • Row colouring by status (confirmed green, matched blue,
    awaiting review amber, error red)
  • Summary row with the total amount
"""

import os

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from upi_reconciler.core.models import ScreenshotStatus
from upi_reconciler.utils.logger import get_logger

logger = get_logger(__name__)

SHEET_NAME = 'Screenshots'

# ── Style Constants ──────────────────────────────────────────────────


def _solid(color):
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


def _font(size=10, color=None, bold=False):
    return Font(name="Calibri", size=size, color=color, bold=bold)


HEADER_FILL = _solid("1F4E79")
HEADER_FONT = _font(size=11, color="FFFFFF", bold=True)
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

DATA_FONT = _font()
DATA_ALIGN = Alignment(horizontal="left", vertical="center")
AMOUNT_ALIGN = Alignment(horizontal="right", vertical="center")

# status value → (row fill, row font)
STATUS_STYLES = {
    ScreenshotStatus.CONFIRMED.value: (_solid("E2EFDA"), _font(color="006100")),
    ScreenshotStatus.MATCHED.value: (_solid("DDEBF7"), _font(color="1F4E79")),
    ScreenshotStatus.PROCESSED.value: (_solid("FFF2CC"), _font(color="7F6000")),
    ScreenshotStatus.ERROR.value: (_solid("FCE4EC"), _font(color="9C0006")),
}

SUMMARY_FILL = _solid("D6E4F0")
SUMMARY_FONT = _font(size=11, color="1F4E79", bold=True)

_EDGE = Side(style="thin", color="B0B0B0")
THIN_BORDER = Border(left=_EDGE, right=_EDGE, top=_EDGE, bottom=_EDGE)

COLUMNS = [
    'File Name', 'Status', 'Amount', 'UTR', 'Date', 'Payer Name',
    'UPI ID', 'Matched Client', 'Payment ID', 'Error', 'Uploaded At',
]
AMOUNT_COLUMN = 'Amount'
STATUS_COLUMN = 'Status'


def screenshot_to_row(record, client_names=None):
    """Flatten a ScreenshotUpload into one export row."""
    client_names = client_names or {}
    info = record.extracted
    return {
        'File Name': record.original_name,
        'Status': record.status.value,
        'Amount': info.amount,
        'UTR': info.utr or '',
        'Date': info.date.strftime('%d/%m/%Y') if info.date else '',
        'Payer Name': info.payer_name or '',
        'UPI ID': info.upi_id or '',
        'Matched Client': client_names.get(record.matched_client_id, record.matched_client_id or ''),
        'Payment ID': record.payment_id or '',
        'Error': record.error or '',
        'Uploaded At': record.created_at.strftime('%Y-%m-%d %H:%M'),
    }


def _auto_fit_columns(ws, df):
    """Adjust column widths to fit the longest value in each column."""
    for col_idx, col_name in enumerate(df.columns, start=1):
        max_width = len(str(col_name)) + 4

        # Sample first 100 rows for performance
        for row in df.head(100).itertuples(index=False):
            value = row[col_idx - 1]
            cell_value = '' if pd.isna(value) else str(value)
            max_width = max(max_width, len(cell_value) + 2)

        max_width = min(max_width, 45)
        ws.column_dimensions[get_column_letter(col_idx)].width = max_width


def _style_header(ws, num_cols):
    ws.row_dimensions[1].height = 30
    for col in range(1, num_cols + 1):
        cell = ws.cell(row=1, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = HEADER_ALIGN
        cell.border = THIN_BORDER


def _style_data_rows(ws, df, num_rows, num_cols):
    """Format data cells; amount cells get a number format, rows a status colour."""
    columns = list(df.columns)
    amount_col = columns.index(AMOUNT_COLUMN) + 1 if AMOUNT_COLUMN in columns else None
    status_col = columns.index(STATUS_COLUMN) + 1 if STATUS_COLUMN in columns else None

    for row in range(2, num_rows + 2):  # +2 because header is row 1
        status = ws.cell(row=row, column=status_col).value if status_col else None
        fill, font = STATUS_STYLES.get(status, (None, DATA_FONT))

        for col in range(1, num_cols + 1):
            cell = ws.cell(row=row, column=col)
            cell.font = font
            cell.border = THIN_BORDER
            if fill is not None:
                cell.fill = fill

            if col == amount_col:
                cell.alignment = AMOUNT_ALIGN
                try:
                    cell.value = float(str(cell.value).replace(',', ''))
                    cell.number_format = '#,##0.00'
                except (ValueError, TypeError):
                    pass
            else:
                cell.alignment = DATA_ALIGN


def _add_summary_row(ws, df, num_rows):
    """Add a totals row at the bottom for the amount column."""
    summary_row = num_rows + 2

    for col_idx, col_name in enumerate(df.columns, start=1):
        cell = ws.cell(row=summary_row, column=col_idx)
        cell.fill = SUMMARY_FILL
        cell.border = THIN_BORDER
        cell.font = SUMMARY_FONT

        if col_idx == 1:
            cell.value = "TOTALS"
            cell.alignment = Alignment(horizontal="center", vertical="center")
        elif col_name == AMOUNT_COLUMN:
            total = 0.0
            for data_row in range(2, num_rows + 2):
                val = ws.cell(row=data_row, column=col_idx).value
                if isinstance(val, (int, float)):
                    total += val
            cell.value = round(total, 2)
            cell.number_format = '#,##0.00'
            cell.alignment = AMOUNT_ALIGN


def export_to_excel(records, output_path, append=False, client_names=None):
    """
    Save screenshot records to a formatted Excel file.

    Args:
        records (list[ScreenshotUpload]): Records to export.
        output_path (str): Destination file path (.xlsx added if missing).
        append (bool): Append to an existing export instead of overwriting.
        client_names (dict): client id → name, used for the Matched Client column.

    Returns:
        tuple: (success: bool, message: str)
    """
    if not records:
        return False, "No data to export."

    if not output_path.lower().endswith('.xlsx'):
        output_path += '.xlsx'

    df_new = pd.DataFrame(
        [screenshot_to_row(r, client_names) for r in records],
        columns=COLUMNS,
    )

    # ── Append mode: load existing data and concatenate ──
    if append and os.path.exists(output_path):
        try:
            df_existing = pd.read_excel(output_path, engine='openpyxl')
            # Drop the totals row from the previous export
            first_col = df_existing.columns[0]
            df_existing = df_existing[df_existing[first_col] != 'TOTALS']
            df = pd.concat([df_existing, df_new], ignore_index=True)
            mode_label = f"Appended {len(df_new)} row(s) to"
        except (OSError, ValueError) as e:
            logger.warning("Could not append to %s, overwriting: %s", output_path, e)
            df = df_new
            mode_label = "Successfully saved to"
    else:
        df = df_new
        mode_label = "Successfully saved to"

    num_rows = len(df)
    num_cols = len(df.columns)

    try:
        with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name=SHEET_NAME)
            ws = writer.sheets[SHEET_NAME]

            _style_header(ws, num_cols)
            _style_data_rows(ws, df, num_rows, num_cols)
            _add_summary_row(ws, df, num_rows)
            _auto_fit_columns(ws, df)

            ws.freeze_panes = 'A2'
    except OSError as e:
        logger.error("Excel export to %s failed: %s", output_path, e)
        return False, f"Error saving Excel: {e}"

    logger.info("Exported %d screenshot row(s) to %s", num_rows, output_path)
    return True, f"{mode_label} {output_path} ({num_rows} total rows)"
