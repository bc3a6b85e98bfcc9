"""
发票编号模块

编号格式由配置给出，如 "INVOICE #{number}"，数字部分补零到 3 位。
"""

import re
from typing import Optional

NUMBER_PLACEHOLDER = "{number}"
NUMBER_WIDTH = 3


def _number_regex(number_format: str) -> "re.Pattern":
    prefix, _, suffix = number_format.partition(NUMBER_PLACEHOLDER)
    return re.compile(re.escape(prefix) + r"(\d+)" + re.escape(suffix))


def parse_invoice_number(invoice_ref: Optional[str], number_format: str) -> Optional[int]:
    """
    从发票编号字符串中解析数字部分。

    Args:
        invoice_ref: 发票编号，如 "INVOICE #041"
        number_format: 编号格式，如 "INVOICE #{number}"

    Returns:
        数字部分，无法解析时返回 None

    Example:
        "INVOICE #041" → 41
        "" → None
    """
    if not invoice_ref:
        return None
    match = _number_regex(number_format).search(str(invoice_ref))
    if match is None:
        return None
    return int(match.group(1))


def format_invoice_number(number: int, number_format: str) -> str:
    """按编号格式生成编号字符串（补零到 3 位）"""
    return number_format.replace(NUMBER_PLACEHOLDER, str(number).zfill(NUMBER_WIDTH))


def next_invoice_number(last_ref: Optional[str], start_ref: str, number_format: str) -> str:
    """
    计算下一个发票编号。

    Args:
        last_ref: 台账中最后一个发票编号，None 表示还没有开过票
        start_ref: 配置的起始编号
        number_format: 编号格式

    Returns:
        下一个编号；last_ref 缺失或格式不符时返回 start_ref
    """
    number = parse_invoice_number(last_ref, number_format)
    if number is None:
        return start_ref
    return format_invoice_number(number + 1, number_format)
