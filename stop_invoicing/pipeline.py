"""
开票流水线

状态流转：
    START → EXTRACTED → MERGED → AGGREGATED → RENDERED → MARKED → DONE
任一阶段失败 → FAILED（抛出 PipelineError，整次运行中止）

数据流：报告 PDF → extractor → 台账追加 → 读取未开票行 → billing 汇总
       → renderer 生成 PDF → 台账标记已开票

发票编号只在 mark_billed 时写入台账；生成 PDF 失败时台账里只留下
未开票、无编号的新行，下次运行会重新开票，编号不会被跳过。
"""

import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .billing import aggregate
from .config import BillingConfig
from .errors import InvoicingError, PipelineError
from .extractor import extract_report_file
from .ledger import LedgerStore
from .models import BillingRecord, PeriodRecord
from .numbering import NUMBER_PLACEHOLDER, next_invoice_number
from .renderer import InvoiceRenderer

logger = logging.getLogger("stop_invoicing")


class RunState(str, Enum):
    START = "start"
    EXTRACTED = "extracted"
    MERGED = "merged"
    AGGREGATED = "aggregated"
    RENDERED = "rendered"
    MARKED = "marked"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    """一次运行的结果"""

    state: RunState = RunState.START
    invoice_ref: Optional[str] = None
    output_path: Optional[str] = None
    records: List[BillingRecord] = field(default_factory=list)
    billed_dates: List[date] = field(default_factory=list)
    extracted: int = 0
    appended: int = 0
    history: List[RunState] = field(default_factory=lambda: [RunState.START])

    def advance(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("Run state → %s", state.value)

    @property
    def invoiced(self) -> bool:
        return self.output_path is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "invoice_ref": self.invoice_ref,
            "output_path": self.output_path,
            "extracted": self.extracted,
            "appended": self.appended,
            "billed_dates": [d.isoformat() for d in self.billed_dates],
            "records": [r.to_dict() for r in self.records],
        }


class InvoicePipeline:
    """把抽取、台账、汇总、生成、标记串成一次开票运行"""

    def __init__(self, config: BillingConfig, ledger: LedgerStore, renderer: InvoiceRenderer):
        self.config = config
        self.ledger = ledger
        self.renderer = renderer

    def invoice_path(self, output_dir: str, invoice_ref: str) -> str:
        """发票输出路径：按 invoice_file_name_format 命名"""
        name = self.config.invoice_file_name_format.replace(NUMBER_PLACEHOLDER, invoice_ref)
        return os.path.join(output_dir, f"{name}.pdf")

    def extract_all(self, pdf_paths: Sequence[str]) -> List[PeriodRecord]:
        """
        并行抽取所有报告，任何一份失败则整体失败。

        PyMuPDF 不支持多线程，因此按进程并行；max_workers=1 时在当前进程顺序执行。

        Returns:
            PeriodRecord 列表（与输入顺序一致）

        Raises:
            ExtractionError: 任意一份报告缺少必需字段
        """
        paths = list(pdf_paths)
        if not paths:
            logger.warning("No report PDFs found")
            return []

        logger.info("Extracting %d report(s)", len(paths))
        workers = min(self.config.max_workers, len(paths))
        if workers == 1:
            return [extract_report_file(p, self.config) for p in paths]

        results: List[Optional[PeriodRecord]] = [None] * len(paths)
        with ProcessPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(extract_report_file, p, self.config): i for i, p in enumerate(paths)}
            try:
                for n, future in enumerate(as_completed(futures), start=1):
                    i = futures[future]
                    results[i] = future.result()
                    logger.debug("[%d/%d] %s", n, len(paths), os.path.basename(paths[i]))
            except BaseException:
                for f in futures:
                    f.cancel()
                raise
        return results

    def run(self, pdf_paths: Sequence[str], output_dir: str, invoice_date: Optional[date] = None) -> RunResult:
        """
        执行一次开票。

        Args:
            pdf_paths: 报告 PDF 路径
            output_dir: 发票输出目录（不存在则创建）
            invoice_date: 开票日期，默认今天

        Returns:
            RunResult；没有未开票行时 state=DONE 且 invoice_ref=None

        Raises:
            PipelineError: 任一阶段失败（state 为失败前最后到达的状态）
        """
        cfg = self.config
        result = RunResult()
        try:
            # 1. 抽取
            records = self.extract_all(pdf_paths)
            result.extracted = len(records)
            result.advance(RunState.EXTRACTED)

            # 2. 合并到台账（先检查模板，模板不可用时不写台账）
            self.renderer.validate()
            last_ref = self.ledger.load_last_invoice_ref()
            invoice_ref = next_invoice_number(last_ref, cfg.start_invoice_number, cfg.invoice_number_format)
            logger.info("Next invoice number: %s", invoice_ref)
            result.appended = self.ledger.append_new_rows(records)
            result.advance(RunState.MERGED)

            # 3. 汇总
            groups = self.ledger.read_unbilled()
            if not groups:
                logger.info("No new entries to process. No invoice generated.")
                result.advance(RunState.DONE)
                return result

            result.records = aggregate(groups, cfg.administrational_cost, cfg.stops_per_hour, cfg.stop_price)
            result.invoice_ref = invoice_ref
            result.advance(RunState.AGGREGATED)

            # 4. 生成发票
            os.makedirs(output_dir, exist_ok=True)
            output_path = self.invoice_path(output_dir, invoice_ref)
            if os.path.exists(output_path):
                logger.warning("Overwriting existing invoice file: %s", output_path)
            result.output_path = self.renderer.render(invoice_ref, result.records, output_path, invoice_date)
            result.advance(RunState.RENDERED)

            # 5. 标记已开票
            dates = sorted({row.date for rows in groups.values() for row in rows})
            self.ledger.mark_billed(dates, invoice_ref)
            result.billed_dates = dates
            result.advance(RunState.MARKED)

            result.advance(RunState.DONE)
            logger.info("Process completed successfully! %s covers %d day(s)", invoice_ref, len(dates))
            return result

        except (InvoicingError, OSError) as e:
            failed_after = result.state
            result.history.append(RunState.FAILED)
            logger.error("Invoice run failed after stage '%s': %s", failed_after.value, e)
            raise PipelineError(f"Invoice run failed after stage '{failed_after.value}': {e}", state=failed_after) from e
