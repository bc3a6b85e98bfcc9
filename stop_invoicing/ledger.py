"""
台账模块

台账是一个 Excel 文件，第 1 行为表头，列名不区分大小写、忽略首尾空格：
    date | total stops | week of year | converted hours | invoice.nr | invoiced

列顺序不固定：每次打开台账时读取表头，绑定一次 LedgerSchema（逻辑列名 → 列位置），
之后通过 schema 访问每一行。

读取：按单元格值构建 DataFrame，索引 + 2 即 Excel 行号（空行保留，行号不偏移）。
写入：用 openpyxl 在原工作簿上只改动涉及的单元格，其余表头、空行、其他工作表原样保留；
先保存到同目录临时文件，再 os.replace 覆盖原文件，中途崩溃不会留下写了一半的台账。
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

import pandas as pd
from openpyxl import load_workbook

from .errors import SchemaError
from .models import LedgerRow, PeriodRecord

logger = logging.getLogger("stop_invoicing")

COL_DATE = "date"
COL_TOTAL_STOPS = "total stops"
COL_WEEK = "week of year"
COL_HOURS = "converted hours"
COL_INVOICE_NR = "invoice.nr"
COL_INVOICED = "invoiced"

REQUIRED_COLUMNS = (COL_DATE, COL_TOTAL_STOPS, COL_WEEK, COL_HOURS, COL_INVOICE_NR, COL_INVOICED)

# 第 1 行为表头，数据从第 2 行开始
FIRST_DATA_ROW = 2


def _normalize_header(name: Any) -> str:
    return str(name).strip().lower()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def is_true(value: Any) -> bool:
    """invoiced 单元格是否为真（布尔 TRUE 或文本 "true"）"""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return pd.api.types.is_bool(value) and bool(value)


def coerce_date(value: Any, date_format: str) -> Optional[date]:
    """
    把 date 单元格转换为 date。

    单元格可能是按 date_format 写入的文本（本工具写入的格式），
    也可能是 Excel 日期（读出为 datetime）。

    Returns:
        date，空单元格返回 None

    Raises:
        ValueError: 无法解析
    """
    if _is_blank(value):
        return None
    if isinstance(value, datetime):  # 包括 pd.Timestamp
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip(), date_format).date()


@dataclass(frozen=True)
class LedgerSchema:
    """逻辑列名 → 列位置（从 0 开始）的绑定结果，同时充当行访问器"""

    columns: Dict[str, int]
    date_format: str = "%d-%m-%Y"

    @classmethod
    def bind(cls, headers: Iterable[Any], date_format: str = "%d-%m-%Y") -> "LedgerSchema":
        """
        读取表头，解析每个必需逻辑列所在的位置。

        Args:
            headers: 表头行的单元格值（按列顺序，空单元格为 None）
            date_format: date 列的文本格式

        Returns:
            LedgerSchema

        Raises:
            SchemaError: 缺少必需列（一次列出所有缺失列）
        """
        headers = list(headers)
        found: Dict[str, int] = {}
        for position, header in enumerate(headers):
            if _is_blank(header):
                continue
            key = _normalize_header(header)
            # 同名列以第一个为准
            if key in REQUIRED_COLUMNS and key not in found:
                found[key] = position

        missing = [c for c in REQUIRED_COLUMNS if c not in found]
        if missing:
            raise SchemaError(
                f"Ledger is missing required column(s): {', '.join(missing)}. "
                f"Available columns: {[str(h) for h in headers if not _is_blank(h)]}"
            )
        return cls(columns=found, date_format=date_format)

    def __getitem__(self, logical_name: str) -> int:
        return self.columns[logical_name]

    def excel_column(self, logical_name: str) -> int:
        """openpyxl 列号（从 1 开始）"""
        return self.columns[logical_name] + 1

    def row_date(self, series: pd.Series, row_number: int) -> Optional[date]:
        value = series[self.columns[COL_DATE]]
        try:
            return coerce_date(value, self.date_format)
        except ValueError:
            raise SchemaError(f"Ledger row {row_number}: cannot parse date {value!r}") from None

    def row_invoice_ref(self, series: pd.Series) -> Optional[str]:
        value = series[self.columns[COL_INVOICE_NR]]
        if _is_blank(value):
            return None
        return str(value).strip()

    def row_billed(self, series: pd.Series) -> bool:
        return is_true(series[self.columns[COL_INVOICED]])

    def to_row(self, series: pd.Series, row_number: int) -> LedgerRow:
        """
        把 DataFrame 的一行转换为 LedgerRow。

        Raises:
            SchemaError: 单元格内容无法解析（错误信息包含 Excel 行号）
        """
        row_date = self.row_date(series, row_number)
        try:
            total_stops = int(series[self.columns[COL_TOTAL_STOPS]])
            week = int(series[self.columns[COL_WEEK]])
            hours = float(series[self.columns[COL_HOURS]])
        except (TypeError, ValueError) as e:
            raise SchemaError(f"Ledger row {row_number} ({row_date}): invalid numeric cell: {e}") from None

        return LedgerRow(
            date=row_date,
            total_stops=total_stops,
            week_of_year=week,
            converted_hours=hours,
            invoice_ref=self.row_invoice_ref(series),
            billed=self.row_billed(series),
            row_number=row_number,
        )


class LedgerStore:
    """
    基于 Excel 文件的台账存储。

    所有操作都针对同一个台账文件；台账只追加、不删除行，
    已开票的行不再修改。
    """

    def __init__(self, path: str, date_format: str = "%d-%m-%Y", sheet_name: Any = 0):
        self.path = path
        self.date_format = date_format
        self.sheet_name = sheet_name

    # ---------- 读写底层 ----------

    def _open(self, data_only: bool):
        """
        打开台账工作簿并定位台账表。

        Args:
            data_only: True 时公式单元格读出缓存值（只读场景）；写入时必须为 False，保留公式

        Returns:
            (workbook, worksheet)
        """
        if not os.path.isfile(self.path):
            logger.error("Ledger file not found: %s", self.path)
            raise FileNotFoundError(self.path)

        wb = load_workbook(self.path, data_only=data_only)
        names = wb.sheetnames
        if isinstance(self.sheet_name, int):
            if self.sheet_name >= len(names):
                raise SchemaError(f"Ledger {self.path} has no sheet #{self.sheet_name}")
            return wb, wb.worksheets[self.sheet_name]
        if self.sheet_name in names:
            return wb, wb[self.sheet_name]
        raise SchemaError(f"Ledger {self.path} has no sheet named {self.sheet_name!r}")

    def _load(self) -> Tuple[pd.DataFrame, LedgerSchema]:
        """
        读取台账表并绑定 schema。

        DataFrame 的列为列位置（0, 1, ...），索引 i 对应 Excel 第 i + 2 行。

        Returns:
            (数据行 DataFrame, schema)
        """
        wb, ws = self._open(data_only=True)
        try:
            values = [list(row) for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

        headers = values[0] if values else []
        schema = LedgerSchema.bind(headers, self.date_format)
        frame = pd.DataFrame(values[1:], columns=range(len(headers)), dtype=object)
        return frame, schema

    def _save(self, wb) -> None:
        """写入临时文件后原子替换台账"""
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".ledger_", suffix=".xlsx", dir=directory)
        os.close(fd)
        try:
            wb.save(tmp_path)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug("Ledger written: %s", self.path)

    def _iter_rows(self, frame: pd.DataFrame) -> Iterator[Tuple[int, pd.Series]]:
        # 行号 = 索引 + 2（表头占第 1 行）
        for idx, series in frame.iterrows():
            yield idx + FIRST_DATA_ROW, series

    def _next_free_row(self, frame: pd.DataFrame) -> int:
        """最后一个非空行之后的行号（带格式的尾部空行会被复用）"""
        last = FIRST_DATA_ROW - 1
        for row_number, series in self._iter_rows(frame):
            if not all(_is_blank(v) for v in series):
                last = row_number
        return last + 1

    def rows(self) -> List[LedgerRow]:
        """读取所有有日期的行"""
        frame, schema = self._load()
        return [
            schema.to_row(series, row_number)
            for row_number, series in self._iter_rows(frame)
            if not _is_blank(series[schema[COL_DATE]])
        ]

    # ---------- 台账操作 ----------

    def load_existing_dates(self) -> Set[date]:
        """台账中已有的所有日期（用于插入前去重）"""
        frame, schema = self._load()
        return self._existing_dates(frame, schema)

    def _existing_dates(self, frame: pd.DataFrame, schema: LedgerSchema) -> Set[date]:
        dates = set()
        for row_number, series in self._iter_rows(frame):
            row_date = schema.row_date(series, row_number)
            if row_date is not None:
                dates.add(row_date)
        return dates

    def load_last_invoice_ref(self) -> Optional[str]:
        """
        按行序扫描，返回最后一个非空的发票编号。

        注意：取的是"最后出现"的编号，不是数值最大的编号。

        Returns:
            发票编号，台账中没有任何编号时返回 None
        """
        frame, schema = self._load()
        last_ref = None
        for _row_number, series in self._iter_rows(frame):
            ref = schema.row_invoice_ref(series)
            if ref:
                last_ref = ref
        if last_ref:
            logger.info("Found a previous invoice in ledger: %s", last_ref)
        return last_ref

    def append_new_rows(self, records: Iterable[PeriodRecord], invoice_ref: Optional[str] = None) -> int:
        """
        追加台账中尚不存在的日期记录。

        Args:
            records: 抽取出的记录
            invoice_ref: 预填的发票编号，None 表示留空（由 mark_billed 写入）

        Returns:
            实际追加的行数；没有新记录时不写文件
        """
        frame, schema = self._load()
        seen = self._existing_dates(frame, schema)

        new_records = []
        for record in records:
            if record.date in seen:
                logger.debug("Skipping %s: already in ledger", record.date.isoformat())
                continue
            seen.add(record.date)
            new_records.append(record)

        if not new_records:
            logger.info("No new dates to add to ledger")
            return 0

        wb, ws = self._open(data_only=False)
        row_number = self._next_free_row(frame)
        for record in new_records:
            ws.cell(row=row_number, column=schema.excel_column(COL_DATE), value=record.date.strftime(self.date_format))
            ws.cell(row=row_number, column=schema.excel_column(COL_TOTAL_STOPS), value=record.total_stops)
            ws.cell(row=row_number, column=schema.excel_column(COL_WEEK), value=record.week_of_year)
            ws.cell(row=row_number, column=schema.excel_column(COL_HOURS), value=record.converted_hours)
            ws.cell(row=row_number, column=schema.excel_column(COL_INVOICE_NR), value=invoice_ref)
            ws.cell(row=row_number, column=schema.excel_column(COL_INVOICED), value=False)
            row_number += 1
        self._save(wb)
        logger.info("Appended %d new row(s) to ledger %s", len(new_records), self.path)
        return len(new_records)

    def read_unbilled(self) -> Dict[int, List[LedgerRow]]:
        """
        读取所有未开票的行，按周数分组。

        Returns:
            {week_of_year: [LedgerRow, ...]}，组内保持行序
        """
        frame, schema = self._load()
        groups: Dict[int, List[LedgerRow]] = {}
        for row_number, series in self._iter_rows(frame):
            if schema.row_billed(series):
                continue
            if _is_blank(series[schema[COL_DATE]]):
                if not all(_is_blank(v) for v in series):
                    logger.warning("Ledger row %d has no date, skipping", row_number)
                continue
            row = schema.to_row(series, row_number)
            groups.setdefault(row.week_of_year, []).append(row)
        return groups

    def mark_billed(self, dates: Iterable[date], invoice_ref: Optional[str] = None) -> int:
        """
        将指定日期的未开票行标记为已开票。

        已开票的行保持不变，保证同一行不会出现在两张发票中。

        Args:
            dates: 本次开票包含的日期
            invoice_ref: 发票编号，非 None 时同时写入 invoice.nr

        Returns:
            被标记的行数
        """
        targets = set(dates)
        if not targets:
            return 0

        frame, schema = self._load()
        row_numbers = [
            row_number
            for row_number, series in self._iter_rows(frame)
            if not schema.row_billed(series) and schema.row_date(series, row_number) in targets
        ]

        if row_numbers:
            wb, ws = self._open(data_only=False)
            for row_number in row_numbers:
                ws.cell(row=row_number, column=schema.excel_column(COL_INVOICED), value=True)
                if invoice_ref is not None:
                    ws.cell(row=row_number, column=schema.excel_column(COL_INVOICE_NR), value=invoice_ref)
            self._save(wb)
        logger.info("Marked %d row(s) as invoiced%s", len(row_numbers), f" ({invoice_ref})" if invoice_ref else "")
        return len(row_numbers)
