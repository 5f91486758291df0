"""
Output module for Excel reports.
"""
from .excel_generator import generate_output_excel, summarize_by_category

__all__ = ['generate_output_excel', 'summarize_by_category']
