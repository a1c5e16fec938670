# Overview: Service-layer operations for financial reports and the dashboard.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from brecho.extensions import db
from brecho.models import Category, Expense, Goal, Revenue, Sale, SaleItem
from brecho.services.cash_flow_service import balance_history, current_balance
from brecho.services.goal_service import count_unread_alerts
from brecho.services.tenant_service import shop_today
from brecho.time_utils import add_months, month_bounds, to_iso_date
from brecho.validation import ValidationError


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


UNCATEGORIZED = "Sem categoria"

_expense_date = func.coalesce(Expense.paid_on, Expense.due_date)


def _check_range(start: date | None, end: date | None) -> None:
    if start is None or end is None:
        raise ReportError("start and end are required")
    if end < start:
        raise ReportError("end must be on or after start")


def _check_month(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 1900 <= year <= 9999:
        raise ValidationError("year is out of range")


def _sum_revenues(shop_id: int, start: date | None, end: date) -> int:
    q = db.session.query(func.coalesce(func.sum(Revenue.amount_cents), 0)).filter(
        Revenue.shop_id == shop_id,
        Revenue.date <= end,
    )
    if start is not None:
        q = q.filter(Revenue.date >= start)
    return int(q.scalar() or 0)


def _sum_expenses(shop_id: int, start: date | None, end: date) -> int:
    q = db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)).filter(
        Expense.shop_id == shop_id,
        _expense_date <= end,
    )
    if start is not None:
        q = q.filter(_expense_date >= start)
    return int(q.scalar() or 0)


def _sales_totals(shop_id: int, start: date, end: date) -> tuple[int, int]:
    """(total sold, cost of goods sold) over non-cancelled sales."""
    sold = db.session.query(func.coalesce(func.sum(Sale.total_cents), 0)).filter(
        Sale.shop_id == shop_id,
        Sale.status != "CANCELLED",
        Sale.sold_on >= start,
        Sale.sold_on <= end,
    ).scalar()
    cost = (
        db.session.query(func.coalesce(func.sum(SaleItem.quantity * SaleItem.unit_cost_cents), 0))
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(
            Sale.shop_id == shop_id,
            Sale.status != "CANCELLED",
            Sale.sold_on >= start,
            Sale.sold_on <= end,
        )
        .scalar()
    )
    return int(sold or 0), int(cost or 0)


def _percent(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def balance_sheet(*, shop_id: int, reference_date: date | None = None) -> dict:
    """
    Single-entry balance sheet: everything received minus everything spent
    up to the reference date.
    """
    reference_date = reference_date or shop_today(shop_id)
    assets = _sum_revenues(shop_id, None, reference_date)
    liabilities = _sum_expenses(shop_id, None, reference_date)
    return {
        "reference_date": reference_date.isoformat(),
        "assets_cents": assets,
        "liabilities_cents": liabilities,
        "equity_cents": assets - liabilities,
    }


def monthly_summary(*, shop_id: int, year: int, month: int) -> dict:
    _check_month(year, month)
    start, end = month_bounds(year, month)
    total_sold, cost = _sales_totals(shop_id, start, end)
    general_expenses = _sum_expenses(shop_id, start, end)
    gross = total_sold - cost
    return {
        "year": year,
        "month": month,
        "total_sold_cents": total_sold,
        "cost_of_goods_sold_cents": cost,
        "gross_from_sales_cents": gross,
        "general_expenses_cents": general_expenses,
        "final_result_cents": gross - general_expenses,
    }


def financial_summary(*, shop_id: int, start: date, end: date) -> dict:
    _check_range(start, end)
    total_revenue = _sum_revenues(shop_id, start, end)
    total_expenses = _sum_expenses(shop_id, start, end)

    latest_revenues = (
        db.session.query(Revenue)
        .filter(Revenue.shop_id == shop_id, Revenue.date >= start, Revenue.date <= end)
        .order_by(Revenue.date.desc(), Revenue.id.desc())
        .limit(5)
        .all()
    )
    latest_expenses = (
        db.session.query(Expense)
        .filter(Expense.shop_id == shop_id, _expense_date >= start, _expense_date <= end)
        .order_by(_expense_date.desc(), Expense.id.desc())
        .limit(5)
        .all()
    )
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "total_revenue_cents": total_revenue,
        "total_expenses_cents": total_expenses,
        "net_cents": total_revenue - total_expenses,
        "cash_balance_cents": current_balance(shop_id=shop_id),
        "latest_revenues": [r.to_dict() for r in latest_revenues],
        "latest_expenses": [e.to_dict() for e in latest_expenses],
    }


def _by_category(rows) -> dict:
    grouped: dict[str, dict] = {}
    for category_id, name, total, count in rows:
        key = name or UNCATEGORIZED
        entry = grouped.setdefault(key, {
            "category_id": category_id if name else None,
            "category_name": key,
            "total_cents": 0,
            "count": 0,
        })
        entry["total_cents"] += int(total or 0)
        entry["count"] += int(count or 0)

    grand_total = sum(e["total_cents"] for e in grouped.values())
    items = sorted(grouped.values(), key=lambda e: (-e["total_cents"], e["category_name"]))
    for entry in items:
        entry["percent"] = _percent(entry["total_cents"], grand_total)
    return {"items": items, "total_cents": grand_total}


def expenses_by_category(*, shop_id: int, start: date, end: date) -> dict:
    _check_range(start, end)
    rows = (
        db.session.query(
            Expense.category_id,
            Category.name,
            func.sum(Expense.amount_cents),
            func.count(Expense.id),
        )
        .outerjoin(Category, Category.id == Expense.category_id)
        .filter(Expense.shop_id == shop_id, _expense_date >= start, _expense_date <= end)
        .group_by(Expense.category_id, Category.name)
        .all()
    )
    return _by_category(rows)


def revenues_by_category(*, shop_id: int, start: date, end: date) -> dict:
    _check_range(start, end)
    rows = (
        db.session.query(
            Revenue.category_id,
            Category.name,
            func.sum(Revenue.amount_cents),
            func.count(Revenue.id),
        )
        .outerjoin(Category, Category.id == Revenue.category_id)
        .filter(Revenue.shop_id == shop_id, Revenue.date >= start, Revenue.date <= end)
        .group_by(Revenue.category_id, Category.name)
        .all()
    )
    return _by_category(rows)


def _month_row(shop_id: int, year: int, month: int) -> dict:
    start, end = month_bounds(year, month)
    revenue = _sum_revenues(shop_id, start, end)
    expenses = _sum_expenses(shop_id, start, end)
    return {
        "year": year,
        "month": month,
        "revenue_cents": revenue,
        "expenses_cents": expenses,
        "profit_cents": revenue - expenses,
    }


def monthly_profitability(*, shop_id: int, year: int) -> list[dict]:
    """
    Twelve rows for the year.

    gross_profit = revenue - expenses; net_profit also takes out the cost
    of the goods sold that month.
    """
    _check_month(year, 1)
    rows = []
    for month in range(1, 13):
        base = _month_row(shop_id, year, month)
        start, end = month_bounds(year, month)
        _, cost = _sales_totals(shop_id, start, end)
        gross_profit = base["profit_cents"]
        rows.append({
            "year": year,
            "month": month,
            "revenue_cents": base["revenue_cents"],
            "expenses_cents": base["expenses_cents"],
            "cost_of_goods_sold_cents": cost,
            "gross_profit_cents": gross_profit,
            "net_profit_cents": gross_profit - cost,
            "margin_percent": _percent(gross_profit, base["revenue_cents"]),
        })
    return rows


def monthly_comparison(*, shop_id: int, months: int = 6, today: date | None = None) -> list[dict]:
    """Last N months, oldest first, each with deltas against the month before."""
    months = max(1, min(months, 24))
    today = today or shop_today(shop_id)
    first = add_months(today.replace(day=1), -(months - 1))

    rows = []
    previous = None
    for offset in range(months):
        current = add_months(first, offset)
        row = _month_row(shop_id, current.year, current.month)
        if previous is None:
            row["revenue_delta_cents"] = None
            row["expenses_delta_cents"] = None
            row["profit_delta_cents"] = None
            row["revenue_change_percent"] = None
        else:
            row["revenue_delta_cents"] = row["revenue_cents"] - previous["revenue_cents"]
            row["expenses_delta_cents"] = row["expenses_cents"] - previous["expenses_cents"]
            row["profit_delta_cents"] = row["profit_cents"] - previous["profit_cents"]
            row["revenue_change_percent"] = _percent(row["revenue_delta_cents"], previous["revenue_cents"])
        rows.append(row)
        previous = row
    return rows


def latest_transactions(*, shop_id: int, limit: int = 10) -> list[dict]:
    """Revenues and expenses merged by date, newest first."""
    revenues = (
        db.session.query(Revenue)
        .filter(Revenue.shop_id == shop_id)
        .order_by(Revenue.date.desc(), Revenue.id.desc())
        .limit(limit)
        .all()
    )
    expenses = (
        db.session.query(Expense)
        .filter(Expense.shop_id == shop_id)
        .order_by(_expense_date.desc(), Expense.id.desc())
        .limit(limit)
        .all()
    )
    merged = [
        {
            "kind": "revenue",
            "id": r.id,
            "description": r.description,
            "amount_cents": r.amount_cents,
            "date": r.date,
        }
        for r in revenues
    ] + [
        {
            "kind": "expense",
            "id": e.id,
            "description": e.description,
            "amount_cents": e.amount_cents,
            "date": e.effective_date,
        }
        for e in expenses
    ]
    merged.sort(key=lambda t: (t["date"], t["kind"] == "revenue", t["id"]), reverse=True)
    for row in merged:
        row["date"] = to_iso_date(row["date"])
    return merged[:limit]


def dashboard(*, shop_id: int, today: date | None = None) -> dict:
    today = today or shop_today(shop_id)
    goals_in_progress = (
        db.session.query(func.count(Goal.id))
        .filter(Goal.shop_id == shop_id, Goal.status == "IN_PROGRESS")
        .scalar()
    ) or 0
    return {
        "today": today.isoformat(),
        "cash_balance_cents": current_balance(shop_id=shop_id, as_of=today),
        "month_summary": monthly_summary(shop_id=shop_id, year=today.year, month=today.month),
        "goals_in_progress": goals_in_progress,
        "unread_alerts": count_unread_alerts(shop_id=shop_id),
        "monthly_series": monthly_comparison(shop_id=shop_id, months=6, today=today),
        "balance_history": balance_history(shop_id=shop_id, days=30, today=today),
        "latest_transactions": latest_transactions(shop_id=shop_id, limit=10),
    }
