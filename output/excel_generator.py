"""
Excel output generator for categorized transactions.

Creates a formatted Excel workbook with these sheets:
1. Transactions
2. Category Summary
3. Candidate Rules (when mined rules are given)
4. Statistics
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows
from openpyxl.worksheet.worksheet import Worksheet

from config import get_category_name
from categorizer.models import CategorySource, Rule, Transaction

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
UNCATEGORIZED_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
MANUAL_FILL = PatternFill(start_color="E2EFDA", end_color="E2EFDA", fill_type="solid")
ALT_ROW_FILL = PatternFill(start_color="F2F2F2", end_color="F2F2F2", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)
CURRENCY_FORMAT = '#,##0.00'
DATE_FORMAT = 'YYYY-MM-DD'
PERCENT_FORMAT = '0.00%'

TRANSACTION_HEADERS = [
    "Date", "Account", "Name", "Description", "Amount", "Category",
    "Source", "Rule Type", "Rule ID", "Labels", "Explanation",
]
RULE_HEADERS = [
    "Rule ID", "Match Type", "Pattern", "Category", "Priority", "Source",
    "Support", "Matches", "Coverage", "Amount", "Explanation",
]


def generate_output_excel(
    transactions: Sequence[Transaction],
    output_path: str,
    candidate_rules: Optional[Sequence[Rule]] = None,
    statistics: Optional[Dict[str, Any]] = None
) -> str:
    """
    Generate an Excel workbook with categorized transactions.

    Args:
        transactions: Categorized transactions
        output_path: Path to save the Excel file
        candidate_rules: Mined candidate rules to list for review
        statistics: Categorizer statistics for the Statistics sheet

    Returns:
        Path to the generated file
    """
    logger.info("Generating Excel output: %s", output_path)

    wb = Workbook()

    # Remove default sheet
    if 'Sheet' in wb.sheetnames:
        del wb['Sheet']

    _create_transactions_sheet(wb, transactions)
    _create_category_summary_sheet(wb, transactions)
    if candidate_rules is not None:
        _create_candidate_rules_sheet(wb, candidate_rules)
    _create_statistics_sheet(wb, transactions, statistics or {})

    wb.save(output_path)
    logger.info("Excel file saved: %s", output_path)

    return output_path


def _write_header(ws: Worksheet, headers: List[str]) -> None:
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center')
        cell.border = THIN_BORDER


def _set_widths(ws: Worksheet, widths: List[int]) -> None:
    for col, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col)].width = width


def _create_transactions_sheet(wb: Workbook, transactions: Sequence[Transaction]) -> None:
    """Create the Transactions sheet."""
    ws = wb.create_sheet("Transactions")
    _write_header(ws, TRANSACTION_HEADERS)

    for row_idx, txn in enumerate(transactions, 2):
        cell = ws.cell(row=row_idx, column=1, value=txn.date)
        cell.number_format = DATE_FORMAT
        ws.cell(row=row_idx, column=2, value=txn.account_id)
        ws.cell(row=row_idx, column=3, value=txn.name)
        ws.cell(row=row_idx, column=4, value=txn.description)
        cell = ws.cell(row=row_idx, column=5, value=txn.amount)
        cell.number_format = CURRENCY_FORMAT
        ws.cell(row=row_idx, column=6, value=get_category_name(txn.category))
        ws.cell(row=row_idx, column=7, value=txn.category_source.value)
        ws.cell(row=row_idx, column=8, value=txn.rule_type.value)
        ws.cell(row=row_idx, column=9, value=txn.rule_id)
        ws.cell(row=row_idx, column=10, value=", ".join(txn.labels))
        ws.cell(row=row_idx, column=11, value=txn.category_explain)

        # Highlight rows needing attention, stripe the rest
        if txn.category_source == CategorySource.NONE:
            fill = UNCATEGORIZED_FILL
        elif txn.category_source == CategorySource.MANUAL:
            fill = MANUAL_FILL
        elif row_idx % 2 == 0:
            fill = ALT_ROW_FILL
        else:
            fill = None
        if fill is not None:
            for col in range(1, len(TRANSACTION_HEADERS) + 1):
                ws.cell(row=row_idx, column=col).fill = fill

    _set_widths(ws, [12, 14, 35, 40, 14, 20, 10, 16, 30, 20, 50])
    ws.auto_filter.ref = f"A1:{get_column_letter(len(TRANSACTION_HEADERS))}{len(transactions) + 1}"
    ws.freeze_panes = "A2"


def summarize_by_category(transactions: Sequence[Transaction]) -> pd.DataFrame:
    """
    Spending and income per category.

    Returns:
        DataFrame with Category, Outflow, Inflow, Net and Count columns,
        sorted by category with uncategorized rows last
    """
    columns = ["Category", "Outflow", "Inflow", "Net", "Count"]
    if not transactions:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame({
        "Category": [t.category or "" for t in transactions],
        "Amount": [t.amount for t in transactions],
    })
    df["Outflow"] = (-df["Amount"]).clip(lower=0)
    df["Inflow"] = df["Amount"].clip(lower=0)

    summary = df.groupby("Category", sort=True).agg(
        Outflow=("Outflow", "sum"),
        Inflow=("Inflow", "sum"),
        Count=("Amount", "size"),
    ).reset_index()
    summary["Net"] = summary["Inflow"] - summary["Outflow"]

    # Uncategorized ("") sorts first; move it to the end
    summary = pd.concat([summary[summary["Category"] != ""], summary[summary["Category"] == ""]])
    summary["Category"] = summary["Category"].map(lambda c: get_category_name(c or None))
    return summary[columns].reset_index(drop=True)


def _create_category_summary_sheet(wb: Workbook, transactions: Sequence[Transaction]) -> None:
    """Create the Category Summary sheet."""
    ws = wb.create_sheet("Category Summary")
    summary = summarize_by_category(transactions)

    for row_idx, row in enumerate(dataframe_to_rows(summary, index=False, header=True), 1):
        for col, value in enumerate(row, 1):
            cell = ws.cell(row=row_idx, column=col, value=value)
            if row_idx == 1:
                cell.font = HEADER_FONT
                cell.fill = HEADER_FILL
            elif 2 <= col <= 4:
                cell.number_format = CURRENCY_FORMAT

    # Grand total
    total_row = len(summary) + 3
    ws.cell(row=total_row, column=1, value="GRAND TOTAL").font = Font(bold=True)
    for col, key in enumerate(["Outflow", "Inflow", "Net"], 2):
        cell = ws.cell(row=total_row, column=col, value=float(summary[key].sum()) if len(summary) else 0.0)
        cell.number_format = CURRENCY_FORMAT
        cell.font = Font(bold=True)
    ws.cell(row=total_row, column=5, value=int(summary["Count"].sum()) if len(summary) else 0).font = Font(bold=True)

    _set_widths(ws, [22, 16, 16, 16, 10])
    ws.freeze_panes = "A2"


def _create_candidate_rules_sheet(wb: Workbook, rules: Sequence[Rule]) -> None:
    """Create the Candidate Rules sheet listing mined rules for review."""
    ws = wb.create_sheet("Candidate Rules")
    _write_header(ws, RULE_HEADERS)

    for row_idx, rule in enumerate(rules, 2):
        ws.cell(row=row_idx, column=1, value=rule.id)
        ws.cell(row=row_idx, column=2, value=rule.match_type.value)
        ws.cell(row=row_idx, column=3, value=rule.pattern)
        ws.cell(row=row_idx, column=4, value=get_category_name(rule.category))
        ws.cell(row=row_idx, column=5, value=rule.priority)
        ws.cell(row=row_idx, column=6, value=rule.source.value)
        ws.cell(row=row_idx, column=7, value=rule.support)
        ws.cell(row=row_idx, column=8, value=rule.actual_matches)
        cell = ws.cell(row=row_idx, column=9, value=rule.coverage)
        cell.number_format = PERCENT_FORMAT
        cell = ws.cell(row=row_idx, column=10, value=rule.amount)
        if rule.amount is not None:
            cell.number_format = CURRENCY_FORMAT
        ws.cell(row=row_idx, column=11, value=rule.explain)

        if row_idx % 2 == 0:
            for col in range(1, len(RULE_HEADERS) + 1):
                ws.cell(row=row_idx, column=col).fill = ALT_ROW_FILL

    _set_widths(ws, [40, 12, 35, 20, 10, 22, 10, 10, 10, 12, 60])
    ws.freeze_panes = "A2"


def _create_statistics_sheet(
    wb: Workbook,
    transactions: Sequence[Transaction],
    statistics: Dict[str, Any]
) -> None:
    """Create the Statistics sheet."""
    ws = wb.create_sheet("Statistics")

    total = len(transactions)
    counts = {
        'manual': sum(1 for t in transactions if t.category_source == CategorySource.MANUAL),
        'rule': sum(1 for t in transactions if t.category_source == CategorySource.RULE),
        'none': sum(1 for t in transactions if t.category_source == CategorySource.NONE),
    }

    def share(n: int) -> str:
        return f"{n} ({n / total * 100:.1f}%)" if total else "0"

    dates = [t.date for t in transactions if t.date]
    date_range = f"{min(dates)} to {max(dates)}" if dates else "N/A"

    stats = [
        ("Summary Statistics", ""),
        ("", ""),
        ("Total Transactions", total),
        ("Date Range", date_range),
        ("Total Outflow", float(sum(-t.amount for t in transactions if t.amount < 0))),
        ("Total Inflow", float(sum(t.amount for t in transactions if t.amount > 0))),
        ("", ""),
        ("Categorization Breakdown", ""),
        ("Manual Overrides", share(counts['manual'])),
        ("Rule Matches", share(counts['rule'])),
        ("Uncategorized", share(counts['none'])),
    ]
    for key in ('user_rule', 'autogen_rule', 'system_rule', 'transfers'):
        if key in statistics:
            stats.append((key.replace('_', ' ').title(), statistics[key]))

    for row_idx, (label, value) in enumerate(stats, 1):
        cell = ws.cell(row=row_idx, column=1, value=label)
        if label and value == "":
            cell.font = Font(bold=True, size=12)
        cell = ws.cell(row=row_idx, column=2, value=value)
        if isinstance(value, float):
            cell.number_format = CURRENCY_FORMAT

    ws.column_dimensions['A'].width = 30
    ws.column_dimensions['B'].width = 25
