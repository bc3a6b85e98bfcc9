"""
活动报告开票工具

模块架构（按数据流）：
    reader.py     → PDF 文本读取（PyMuPDF + OCR）
    extractor.py  → 报告字段抽取（日期、停靠数 → 周数、工时）
    ledger.py     → Excel 台账（去重追加、未开票读取、标记已开票）
    numbering.py  → 发票编号递增
    billing.py    → 按周汇总工时与金额（首组扣管理费）
    renderer.py   → 模板填充 + LibreOffice 转 PDF
    pipeline.py   → 流水线编排
    writer.py     → 运行汇总输出（JSON/CSV）
    cli.py        → 命令行接口（主入口）

公共 API：
    load_config            - 加载计费配置
    extract_period_record  - 从报告文本提取记录
    LedgerStore            - 台账读写
    next_invoice_number    - 下一个发票编号
    aggregate              - 按周汇总
    InvoiceRenderer        - 生成发票 PDF
    InvoicePipeline        - 一次完整开票
"""

__version__ = "1.0.0"

from .config import BillingConfig, load_config
from .errors import (
    InvoicingError,
    ConfigError,
    ExtractionError,
    SchemaError,
    RenderError,
    PipelineError,
)
from .models import PeriodRecord, LedgerRow, BillingRecord
from .reader import read_pdf_text, find_pdf_files
from .extractor import extract_period_record, extract_report_file, round_half_up
from .ledger import LedgerStore, LedgerSchema
from .numbering import parse_invoice_number, format_invoice_number, next_invoice_number
from .billing import aggregate, administrational_hours
from .renderer import InvoiceRenderer, fill_template, convert_xlsx_to_pdf
from .pipeline import InvoicePipeline, RunResult, RunState

__all__ = [
    "__version__",

    # Config
    "BillingConfig",
    "load_config",

    # Errors
    "InvoicingError",
    "ConfigError",
    "ExtractionError",
    "SchemaError",
    "RenderError",
    "PipelineError",

    # Models
    "PeriodRecord",
    "LedgerRow",
    "BillingRecord",

    # Reader / Extractor
    "read_pdf_text",
    "find_pdf_files",
    "extract_period_record",
    "extract_report_file",
    "round_half_up",

    # Ledger
    "LedgerStore",
    "LedgerSchema",

    # Numbering
    "parse_invoice_number",
    "format_invoice_number",
    "next_invoice_number",

    # Billing
    "aggregate",
    "administrational_hours",

    # Renderer
    "InvoiceRenderer",
    "fill_template",
    "convert_xlsx_to_pdf",

    # Pipeline
    "InvoicePipeline",
    "RunResult",
    "RunState",
]
