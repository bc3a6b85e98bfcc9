"""
发票生成模块

职责：
- 把开票记录填入 Excel 模板（占位符替换）
- 调用 LibreOffice 将填好的工作簿转换为 PDF
- 确认 PDF 已落盘后才返回

模板占位符（xlsx-template 风格，只处理第一个工作表）：
    ${invoiceNumber}               单值占位符
    ${table:records.weekOfYear}    表格占位符，所在行按记录数向下展开
"""

import logging
import os
import re
import subprocess
from copy import copy
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from openpyxl import load_workbook

from .errors import RenderError, SchemaError
from .extractor import round_half_up
from .models import BillingRecord

logger = logging.getLogger("stop_invoicing")

SCALAR_RE = re.compile(r"\$\{(\w+)\}")
TABLE_RE = re.compile(r"^\$\{table:(\w+)\.(\w+)\}$")

REQUIRED_SCALAR = "invoiceNumber"
RECORDS_TABLE = "records"

Converter = Callable[[str, str], None]


def _find_table_rows(ws) -> Dict[str, Tuple[int, Dict[int, str]]]:
    """
    查找表格占位符所在的模板行。

    Returns:
        {table_name: (row, {column: field})}

    Raises:
        SchemaError: 同一表格的占位符分布在多行
    """
    tables: Dict[str, Tuple[int, Dict[int, str]]] = {}
    for row in ws.iter_rows():
        for cell in row:
            if not isinstance(cell.value, str):
                continue
            m = TABLE_RE.match(cell.value.strip())
            if not m:
                continue
            name, field = m.group(1), m.group(2)
            if name in tables and tables[name][0] != cell.row:
                raise SchemaError(
                    f"Template table '{name}' spans rows {tables[name][0]} and {cell.row}; "
                    f"all its placeholders must be on one row"
                )
            tables.setdefault(name, (cell.row, {}))[1][cell.column] = field
    return tables


def _expand_table(ws, row: int, fields: Dict[int, str], items: Sequence[Dict[str, Any]]) -> None:
    """把模板行展开为 len(items) 行，新行复制模板行的样式和静态内容"""
    max_col = ws.max_column
    template = [(ws.cell(row=row, column=c).value, copy(ws.cell(row=row, column=c)._style)) for c in range(1, max_col + 1)]
    height = ws.row_dimensions[row].height

    if len(items) > 1:
        ws.insert_rows(row + 1, amount=len(items) - 1)

    if not items:
        for col in fields:
            ws.cell(row=row, column=col).value = None
        return

    for i, item in enumerate(items):
        target = row + i
        if i > 0 and height is not None:
            ws.row_dimensions[target].height = height
        for col in range(1, max_col + 1):
            cell = ws.cell(row=target, column=col)
            static_value, style = template[col - 1]
            if i > 0:
                cell._style = copy(style)
            if col in fields:
                cell.value = item.get(fields[col])
            elif i > 0:
                cell.value = static_value


def _substitute_scalars(ws, context: Dict[str, Any]) -> None:
    for row in ws.iter_rows():
        for cell in row:
            if not isinstance(cell.value, str) or "${" not in cell.value:
                continue
            text = cell.value
            whole = SCALAR_RE.fullmatch(text.strip())
            if whole and whole.group(1) in context:
                # 整格占位符保留原始类型（数字、日期）
                cell.value = context[whole.group(1)]
                continue

            def _replace(m):
                name = m.group(1)
                if name not in context:
                    logger.warning("Unknown template placeholder %s at %s", m.group(0), cell.coordinate)
                    return m.group(0)
                return str(context[name])

            cell.value = SCALAR_RE.sub(_replace, text)


def _open_template(template_path: str):
    if not os.path.isfile(template_path):
        logger.error("Template file not found: %s", template_path)
        raise FileNotFoundError(template_path)
    return load_workbook(template_path)


def _check_placeholders(ws, template_path: str) -> Dict[str, Tuple[int, Dict[int, str]]]:
    """
    检查模板包含 ${invoiceNumber} 和 records 表格占位符。

    Returns:
        _find_table_rows 的结果

    Raises:
        SchemaError: 缺少必需占位符（一次列出全部）
    """
    has_invoice_number = any(
        isinstance(cell.value, str) and "${" + REQUIRED_SCALAR + "}" in cell.value
        for row in ws.iter_rows() for cell in row
    )
    table_rows = _find_table_rows(ws)
    missing = []
    if not has_invoice_number:
        missing.append("${" + REQUIRED_SCALAR + "}")
    if RECORDS_TABLE not in table_rows:
        missing.append("${table:" + RECORDS_TABLE + ".*}")
    if missing:
        raise SchemaError(f"Template {template_path} is missing placeholder(s): {', '.join(missing)}")
    return table_rows


def fill_template(
    template_path: str,
    output_path: str,
    context: Dict[str, Any],
    tables: Dict[str, List[Dict[str, Any]]],
) -> None:
    """
    填充 Excel 模板并保存。

    Args:
        template_path: 模板文件路径
        output_path: 输出 .xlsx 路径
        context: 单值占位符 {name: value}
        tables: 表格占位符 {table_name: [row_dict, ...]}

    Raises:
        FileNotFoundError: 模板不存在
        SchemaError: 模板缺少 ${invoiceNumber} 或 records 表格
    """
    wb = _open_template(template_path)
    ws = wb.worksheets[0]
    table_rows = _check_placeholders(ws, template_path)

    # 从下往上展开，插入行不会影响上方表格的位置
    for name, (row, fields) in sorted(table_rows.items(), key=lambda kv: kv[1][0], reverse=True):
        items = tables.get(name, [])
        if name not in tables:
            logger.warning("No data for template table '%s', leaving it empty", name)
        _expand_table(ws, row, fields, items)

    _substitute_scalars(ws, context)
    wb.save(output_path)


def convert_xlsx_to_pdf(xlsx_path: str, pdf_path: str, soffice: str = "soffice", timeout: int = 180) -> None:
    """
    使用 LibreOffice（headless）把工作簿转换为 PDF。

    Args:
        xlsx_path: 输入 .xlsx 路径
        pdf_path: 目标 PDF 路径
        soffice: LibreOffice 可执行文件
        timeout: 超时秒数

    Raises:
        RenderError: 转换失败或未生成 PDF
    """
    outdir = os.path.dirname(os.path.abspath(pdf_path))
    cmd = [soffice, "--headless", "--convert-to", "pdf", "--outdir", outdir, xlsx_path]
    try:
        res = subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=timeout)
        logger.debug("soffice stdout: %s", res.stdout.decode(errors="ignore")[:2000])
    except FileNotFoundError as e:
        raise RenderError(f"LibreOffice executable not found: {soffice}") from e
    except subprocess.TimeoutExpired as e:
        raise RenderError(f"LibreOffice conversion timed out after {timeout}s: {xlsx_path}") from e
    except subprocess.CalledProcessError as e:
        logger.error("soffice failed (exit=%s). cmd=%s", e.returncode, " ".join(cmd))
        logger.error("soffice stderr: %s", (e.stderr or b"").decode(errors="ignore")[:2000])
        raise RenderError(f"Error converting {xlsx_path} to PDF (exit={e.returncode})") from e

    # LibreOffice 以输入文件名命名输出
    produced = os.path.join(outdir, os.path.splitext(os.path.basename(xlsx_path))[0] + ".pdf")
    if os.path.abspath(produced) != os.path.abspath(pdf_path) and os.path.isfile(produced):
        os.replace(produced, pdf_path)
    if not os.path.isfile(pdf_path):
        raise RenderError(f"LibreOffice reported success but no PDF was written: {pdf_path}")
    logger.info("Successfully converted %s to %s", xlsx_path, pdf_path)


class InvoiceRenderer:
    """按模板生成发票 PDF"""

    def __init__(self, template_path: str, converter: Optional[Converter] = None, soffice: str = "soffice"):
        self.template_path = template_path
        self.soffice = soffice
        self.converter = converter or self._soffice_converter

    def _soffice_converter(self, xlsx_path: str, pdf_path: str) -> None:
        convert_xlsx_to_pdf(xlsx_path, pdf_path, soffice=self.soffice)

    def validate(self) -> None:
        """
        在写台账之前检查模板：文件存在且包含必需占位符。

        Raises:
            FileNotFoundError: 模板不存在
            SchemaError: 模板缺少必需占位符
        """
        try:
            wb = _open_template(self.template_path)
        except FileNotFoundError:
            raise
        except Exception as e:
            raise RenderError(f"Cannot open template {self.template_path}: {e}") from e
        try:
            _check_placeholders(wb.worksheets[0], self.template_path)
        finally:
            wb.close()
        logger.debug("Template is valid: %s", self.template_path)

    @staticmethod
    def build_context(invoice_ref: str, records: Sequence[BillingRecord], invoice_date: Optional[date] = None) -> Dict[str, Any]:
        """模板单值占位符的取值"""
        return {
            "invoiceNumber": invoice_ref,
            "invoiceDate": invoice_date or date.today(),
            "totalHours": round_half_up(sum(r.hours for r in records), 2),
            "totalAmount": round_half_up(sum(r.total for r in records), 2),
        }

    def render(
        self,
        invoice_ref: str,
        records: Sequence[BillingRecord],
        output_path: str,
        invoice_date: Optional[date] = None,
    ) -> str:
        """
        生成发票 PDF。

        Args:
            invoice_ref: 发票编号
            records: 开票记录（周数升序）
            output_path: 目标 PDF 路径
            invoice_date: 开票日期，默认今天

        Returns:
            生成的 PDF 路径

        Raises:
            SchemaError: 模板缺少必需占位符
            RenderError: 生成或转换失败
        """
        if not records:
            raise RenderError(f"No billing records to render for {invoice_ref}")

        xlsx_path = os.path.splitext(output_path)[0] + ".xlsx"
        context = self.build_context(invoice_ref, records, invoice_date)
        tables = {RECORDS_TABLE: [r.to_template() for r in records]}

        try:
            try:
                fill_template(self.template_path, xlsx_path, context, tables)
            except (SchemaError, FileNotFoundError):
                raise
            except Exception as e:
                raise RenderError(f"Error filling template {self.template_path}: {e}") from e

            # 校验生成的工作簿可以正常打开
            try:
                load_workbook(xlsx_path).close()
            except Exception as e:
                raise RenderError(f"Error validating temporary Excel file {xlsx_path}: {e}") from e
            logger.debug("Temporary Excel file is valid: %s", xlsx_path)

            try:
                self.converter(xlsx_path, output_path)
            except RenderError:
                raise
            except Exception as e:
                raise RenderError(f"Error converting {xlsx_path} to {output_path}: {e}") from e
        finally:
            if os.path.exists(xlsx_path):
                os.remove(xlsx_path)

        if not os.path.isfile(output_path):
            raise RenderError(f"Invoice file was not written: {output_path}")
        logger.info("Invoice %s written to %s", invoice_ref, output_path)
        return output_path
