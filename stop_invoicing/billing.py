"""
开票汇总模块

把未开票的台账行按周汇总为 BillingRecord：
    工时 = Σ(停靠数) / 每小时停靠数
    第一组（周数最小的一组）额外扣除管理费折算工时
    金额 = 工时 × 每小时停靠数 × 每停靠单价
"""

import logging
from typing import List, Mapping, Sequence

from .extractor import round_half_up
from .models import BillingRecord, LedgerRow

logger = logging.getLogger("stop_invoicing")


def administrational_hours(admin_cost: float, stops_per_hour: float, price_per_stop: float) -> float:
    """管理费折算为工时：admin_cost / (stops_per_hour × price_per_stop)"""
    return admin_cost / (stops_per_hour * price_per_stop)


def aggregate(
    groups: Mapping[int, Sequence[LedgerRow]],
    admin_cost: float,
    stops_per_hour: float,
    price_per_stop: float,
) -> List[BillingRecord]:
    """
    按周汇总开票记录。

    各组按周数升序处理；管理费扣除只作用于第一组，每次开票恰好扣一次。
    扣除后工时可能为负，不做截断（仅记录警告）。

    Args:
        groups: {week_of_year: [LedgerRow, ...]}
        admin_cost: 管理费
        stops_per_hour: 每小时停靠数（同时作为模板中的 price）
        price_per_stop: 每停靠单价

    Returns:
        BillingRecord 列表（周数升序）

    Example:
        groups = {1: 350 stops, 2: 350 stops}, 35 stops/h, admin 300, price 1.45
        → week 1: 10.0 - 5.9113 = 4.09h, week 2: 10.0h
    """
    records = []
    admin_hours = administrational_hours(admin_cost, stops_per_hour, price_per_stop)

    for index, period in enumerate(sorted(groups)):
        rows = groups[period]
        total_stops = sum(row.total_stops for row in rows)
        total_hours = total_stops / stops_per_hour

        if index == 0:
            hours = round_half_up(total_hours - admin_hours, 2)
            logger.info(
                "Week %s: %.2f h minus %.2f administrational hours", period, total_hours, admin_hours
            )
            if hours < 0:
                logger.warning(
                    "Week %s billed hours are negative (%.2f): administrational cost exceeds the week's work",
                    period, hours,
                )
        else:
            hours = round_half_up(total_hours, 2)

        total = hours * stops_per_hour * price_per_stop
        records.append(BillingRecord(period=period, hours=hours, rate=stops_per_hour, total=total))
        logger.debug("Week %s: %d stops over %d day(s) → %.2f h, total %.2f", period, total_stops, len(rows), hours, total)

    return records
