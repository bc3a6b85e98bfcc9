"""
配置模块

合同相关的计费常量（费率、单价、管理费、编号格式）不再写死在代码里，
而是从 JSON 配置文件加载为 BillingConfig，在构造流水线时传入。

配置文件示例（invoice_config.json）：
{
  "stopsPerHour": 35,
  "startInvoiceNumber": "INVOICE #040",
  "administrationalCost": 300,
  "stopPrice": 1.45,
  "invoiceFileNameFormat": "MTNA_invoice {number}",
  "invoiceNumberFormat": "INVOICE #{number}"
}
"""

import json
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from .errors import ConfigError
from .numbering import NUMBER_PLACEHOLDER, parse_invoice_number

logger = logging.getLogger("stop_invoicing")

# JSON 键名 → BillingConfig 字段名
CONFIG_KEYS = {
    "stopsPerHour": "stops_per_hour",
    "startInvoiceNumber": "start_invoice_number",
    "administrationalCost": "administrational_cost",
    "stopPrice": "stop_price",
    "invoiceFileNameFormat": "invoice_file_name_format",
    "invoiceNumberFormat": "invoice_number_format",
    "reportDatePattern": "report_date_pattern",
    "totalStopsPattern": "total_stops_pattern",
    "reportDateFormat": "report_date_format",
    "ocrLang": "ocr_lang",
    "maxWorkers": "max_workers",
    "sofficePath": "soffice_path",
}


@dataclass(frozen=True)
class BillingConfig:
    """一份合同的全部计费参数"""

    stops_per_hour: float = 35.0
    start_invoice_number: str = "INVOICE #040"
    administrational_cost: float = 300.0
    stop_price: float = 1.45
    invoice_file_name_format: str = "MTNA_invoice {number}"
    invoice_number_format: str = "INVOICE #{number}"
    report_date_pattern: str = r"Activiteitenrapport\s*([0-9]{2}-[0-9]{2}-[0-9]{4})"
    total_stops_pattern: str = r"Totaal aantal succesvolle stops\s*([0-9]+)"
    report_date_format: str = "%d-%m-%Y"
    ocr_lang: str = ""
    max_workers: int = 4
    soffice_path: str = "soffice"

    def validate(self) -> "BillingConfig":
        """
        校验配置值，非法时抛出 ConfigError。

        Returns:
            self，便于链式调用
        """
        if self.stops_per_hour <= 0:
            raise ConfigError(f"stopsPerHour must be positive, got {self.stops_per_hour!r}")
        if self.stop_price <= 0:
            raise ConfigError(f"stopPrice must be positive, got {self.stop_price!r}")
        if self.administrational_cost < 0:
            raise ConfigError(f"administrationalCost must not be negative, got {self.administrational_cost!r}")
        if self.max_workers < 1:
            raise ConfigError(f"maxWorkers must be at least 1, got {self.max_workers!r}")

        for key, fmt in (
            ("invoiceNumberFormat", self.invoice_number_format),
            ("invoiceFileNameFormat", self.invoice_file_name_format),
        ):
            if fmt.count(NUMBER_PLACEHOLDER) != 1:
                raise ConfigError(f"{key} must contain '{NUMBER_PLACEHOLDER}' exactly once: {fmt!r}")

        # 起始编号必须能被编号格式解析
        if parse_invoice_number(self.start_invoice_number, self.invoice_number_format) is None:
            raise ConfigError(
                f"startInvoiceNumber {self.start_invoice_number!r} does not match "
                f"invoiceNumberFormat {self.invoice_number_format!r}"
            )
        return self


def config_from_dict(data: Dict[str, Any], base: Optional[BillingConfig] = None) -> BillingConfig:
    """
    从 JSON 字典构建配置，缺失的键沿用 base（默认值）。

    Args:
        data: 解析后的 JSON 对象，键名为 camelCase
        base: 基础配置，None 表示默认配置

    Returns:
        校验通过的 BillingConfig

    Raises:
        ConfigError: 值类型或取值非法
    """
    base = base or BillingConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a JSON object, got {type(data).__name__}")

    changes = {}
    for key, value in data.items():
        field_name = CONFIG_KEYS.get(key)
        if field_name is None:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        expected = type(getattr(base, field_name))
        try:
            if expected is str:
                if not isinstance(value, str):
                    raise TypeError(value)
            elif isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(value)
            elif expected is int:
                if isinstance(value, float) and not value.is_integer():
                    raise ValueError(value)
                value = int(value)
            else:
                value = float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid value for {key}: {value!r}") from None
        changes[field_name] = value

    return replace(base, **changes).validate()


def load_config(config_path: Optional[str] = None) -> BillingConfig:
    """
    加载计费配置文件。

    Args:
        config_path: JSON 配置文件路径，None 表示使用默认配置

    Returns:
        BillingConfig

    Raises:
        ConfigError: 文件不存在、不可读或内容非法
    """
    if config_path is None:
        logger.info("No config file given, using default billing constants")
        return BillingConfig().validate()

    if not os.path.isfile(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to load config from {config_path}: {e}") from e

    config = config_from_dict(data)
    logger.info("Loaded billing config from %s", config_path)
    return config
