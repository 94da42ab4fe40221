"""
Render layer: CSV/PDF 출력 생성.

역할:
- 레코드 + 컬럼 정의 → CSV (stdlib csv)
- 대화/문서 → PDF (reportlab)
"""

from .csv_report import render_csv
from .pdf import render_conversations_pdf, render_documents_pdf

__all__ = [
    "render_csv",
    "render_conversations_pdf",
    "render_documents_pdf",
]
