"""
数据模型

PeriodRecord  → 从一份活动报告中提取的单日记录
LedgerRow     → 台账中持久化的一行（附带开票状态）
BillingRecord → 按周汇总后的开票记录，直接绑定到发票模板
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class PeriodRecord:
    date: date
    total_stops: int
    week_of_year: int
    converted_hours: float
    source: Optional[str] = None


@dataclass(frozen=True)
class LedgerRow:
    date: date
    total_stops: int
    week_of_year: int
    converted_hours: float
    invoice_ref: Optional[str] = None
    billed: bool = False
    row_number: int = 0  # Excel 行号（表头为第 1 行）


@dataclass(frozen=True)
class BillingRecord:
    period: int
    hours: float
    rate: float
    total: float

    def to_template(self) -> Dict[str, Any]:
        """转换为模板 records 表格所需的字段名"""
        return {
            "weekOfYear": self.period,
            "hours": self.hours,
            "price": self.rate,
            "total": self.total,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "hours": self.hours,
            "rate": self.rate,
            "total": self.total,
        }
