"""
输出模块

职责：
- 把运行结果写成 JSON / CSV 汇总文件
- 统一输出接口，不包含业务逻辑
"""

import os
import csv
import json
import logging
from typing import List, Dict, Any

logger = logging.getLogger("stop_invoicing")

SUMMARY_FORMATS = (".json", ".csv")


def write_json(data: Any, file_path: str) -> None:
    """
    输出 JSON 文件。

    Args:
        data: 要输出的数据
        file_path: 输出文件路径

    Raises:
        IOError: 写入失败
    """
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    logger.info("Wrote JSON: %s", file_path)


def write_csv(rows: List[Dict], file_path: str, fieldnames: List[str] = None) -> None:
    """
    输出 CSV 文件。

    Args:
        rows: 要输出的行列表
        file_path: 输出文件路径
        fieldnames: 列名列表，不指定则自动从第一行推断
    """
    if not rows and not fieldnames:
        logger.warning("No data to write to CSV: %s", file_path)
        return

    if fieldnames is None:
        fieldnames = list(rows[0].keys())

    with open(file_path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        w.writerows(rows)
    logger.info("Wrote CSV: %s (%d rows)", file_path, len(rows))


def summary_rows(summary: Dict[str, Any]) -> List[Dict[str, Any]]:
    """把运行汇总展开为每周一行（CSV 用）"""
    return [
        {"invoice_ref": summary.get("invoice_ref") or "", **record}
        for record in summary.get("records", [])
    ]


def write_auto(data: Dict[str, Any], file_path: str) -> None:
    """
    根据文件扩展名自动选择输出格式。

    Args:
        data: 运行汇总（RunResult.to_dict()）
        file_path: 输出文件路径

    Raises:
        ValueError: 不支持的文件格式
        IOError: 写入失败
    """
    ext = os.path.splitext(file_path)[1].lower()

    if ext not in SUMMARY_FORMATS:
        raise ValueError(f"Unsupported file format: {ext}")

    if ext == ".json":
        write_json(data, file_path)
    else:
        write_csv(summary_rows(data), file_path, fieldnames=["invoice_ref", "period", "hours", "rate", "total"])
