"""
命令行接口模块（主入口）

用法：
    stop-invoicing <ledger.xlsx> <template.xlsx> <output_dir> <pdf_dir> [--config invoice_config.json]

数据流：reader → extractor → ledger → billing → renderer → ledger
"""

import os
import sys
import logging
import argparse
from typing import List, Optional

from .config import load_config
from .errors import InvoicingError, PipelineError
from .ledger import LedgerStore
from .pipeline import InvoicePipeline
from .reader import find_pdf_files
from .renderer import InvoiceRenderer
from .writer import SUMMARY_FORMATS, write_auto

logger = logging.getLogger("stop_invoicing")
DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s: %(message)s"
LOG_FILE_NAME = "invoicing.log"


def setup_parser() -> argparse.ArgumentParser:
    """设置命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog="stop-invoicing",
        description="Generate a weekly invoice from delivery activity reports and mark the ledger as invoiced",
        epilog="Example: stop-invoicing reports.xlsx template.xlsx invoices/ reports/",
    )
    parser.add_argument("ledger", help="Ledger Excel file (.xlsx)")
    parser.add_argument("template", help="Invoice template Excel file (.xlsx)")
    parser.add_argument("output_dir", help="Directory for the generated invoice PDF")
    parser.add_argument("pdf_dir", help="Directory with activity report PDFs (searched recursively)")
    parser.add_argument(
        "--config",
        help="Billing config JSON file (default: built-in contract constants)"
    )
    parser.add_argument(
        "--summary",
        help="Write a run summary to this .json or .csv file"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging"
    )
    return parser


def setup_logging(output_dir: str, debug: bool = False) -> None:
    """
    配置日志：控制台（stderr）+ 输出目录下的日志文件。

    Args:
        output_dir: 日志文件所在目录（不存在则创建）
        debug: 是否输出 DEBUG 级别日志
    """
    log_level = logging.DEBUG if debug else logging.INFO

    # 移除默认的 handler
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    log_format = logging.Formatter(DEFAULT_LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(log_format)
    logging.root.addHandler(console_handler)

    os.makedirs(output_dir, exist_ok=True)
    file_handler = logging.FileHandler(os.path.join(output_dir, LOG_FILE_NAME), encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(log_format)
    logging.root.addHandler(file_handler)

    logging.root.setLevel(log_level)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI 主入口，返回进程退出码"""
    parser = setup_parser()
    args = parser.parse_args(argv)
    if args.summary and os.path.splitext(args.summary)[1].lower() not in SUMMARY_FORMATS:
        parser.error(f"--summary must end with one of: {', '.join(SUMMARY_FORMATS)}")

    ledger_path, template_path, output_dir, pdf_dir = (
        os.path.abspath(p) for p in (args.ledger, args.template, args.output_dir, args.pdf_dir)
    )
    setup_logging(output_dir, debug=args.debug)

    logger.info("Using ledger: %s", ledger_path)
    logger.info("Using template: %s", template_path)
    logger.info("Using output directory: %s", output_dir)
    logger.info("Using PDF directory: %s", pdf_dir)

    try:
        config = load_config(args.config)
        pdf_paths = find_pdf_files(pdf_dir)
        logger.info("Found %d report PDF(s)", len(pdf_paths))

        pipeline = InvoicePipeline(
            config,
            LedgerStore(ledger_path, date_format=config.report_date_format),
            InvoiceRenderer(template_path, soffice=config.soffice_path),
        )
        result = pipeline.run(pdf_paths, output_dir)

        if args.summary:
            write_auto(result.to_dict(), args.summary)

    except PipelineError as e:
        cause = e.__cause__ or e
        logger.error("Error: %s", cause, exc_info=args.debug)
        return 1
    except (InvoicingError, OSError, ValueError) as e:
        logger.error("Error: %s", e, exc_info=args.debug)
        return 1

    if result.invoiced:
        print(f"Invoice {result.invoice_ref} -> {result.output_path}")
    else:
        print("No new entries to process. No invoice generated.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
