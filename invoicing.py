#!/usr/bin/env python3
"""
活动报告开票工具 - CLI 入口

命令行用法：
    python invoicing.py reports.xlsx template.xlsx invoices/ reports/
    python invoicing.py reports.xlsx template.xlsx invoices/ reports/ --config invoice_config.json

依赖：
    pip install pymupdf pandas openpyxl
    PDF 转换需要 LibreOffice（soffice）
    可选 OCR 支持：ocrmypdf + tesseract-ocr
"""

import sys

from stop_invoicing.cli import main

if __name__ == "__main__":
    sys.exit(main())
