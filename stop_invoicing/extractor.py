"""
活动报告抽取模块

职责：
- 从报告全文中匹配两个必需字段：报告日期、成功停靠总数
- 派生周数（ISO 周）与折算工时
- 只做抽取，不读写台账
"""

import logging
import os
import re
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .config import BillingConfig
from .errors import ExtractionError
from .models import PeriodRecord
from .reader import read_pdf_text

logger = logging.getLogger("stop_invoicing")


def round_half_up(value: float, digits: int = 2) -> float:
    """
    四舍五入到指定小数位（0.5 远离零进位）。

    先转为十进制字符串再舍入，避免二进制浮点误差导致 1.005 → 1.0。

    Example:
        round_half_up(4.08867) → 4.09
        round_half_up(0.125) → 0.13
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def extract_period_record(text: str, config: BillingConfig, source: Optional[str] = None) -> PeriodRecord:
    """
    从报告文本中提取单日记录。

    Args:
        text: 报告全文（所有页拼接）
        config: 计费配置（匹配规则、日期格式、每小时停靠数）
        source: 来源文件路径，仅用于错误信息

    Returns:
        PeriodRecord

    Raises:
        ExtractionError: 缺少日期或停靠数，或日期无法解析
    """
    label = source or "<text>"
    date_match = re.search(config.report_date_pattern, text)
    stops_match = re.search(config.total_stops_pattern, text)

    missing = []
    if date_match is None:
        missing.append("report date")
    if stops_match is None:
        missing.append("total successful stops")
    if missing:
        raise ExtractionError(f"Required data not found in {label}: {', '.join(missing)}")

    raw_date = date_match.group(1)
    try:
        report_date = datetime.strptime(raw_date, config.report_date_format).date()
    except ValueError as e:
        raise ExtractionError(f"Invalid report date {raw_date!r} in {label}: {e}") from e

    total_stops = int(stops_match.group(1))
    converted_hours = round_half_up(total_stops / config.stops_per_hour, 2)

    return PeriodRecord(
        date=report_date,
        total_stops=total_stops,
        week_of_year=report_date.isocalendar()[1],
        converted_hours=converted_hours,
        source=source,
    )


def extract_report_file(pdf_path: str, config: BillingConfig) -> PeriodRecord:
    """读取一份报告 PDF 并提取记录"""
    text = read_pdf_text(pdf_path, ocr_lang=config.ocr_lang)
    record = extract_period_record(text, config, source=pdf_path)
    logger.info(
        "Extracted %s: date=%s, stops=%d, week=%d, hours=%.2f",
        os.path.basename(pdf_path), record.date.isoformat(), record.total_stops,
        record.week_of_year, record.converted_hours,
    )
    return record
