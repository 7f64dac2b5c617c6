# stats.py
"""Aggregates derived from the cached collections.

All functions are pure: they take plain record dicts (camelCase keys, as
stored) and a reference day, and never touch the database.
"""
from dataclasses import asdict, dataclass
from datetime import date, datetime

import config


@dataclass(frozen=True)
class AgentReport:
    added_today: int = 0
    monthly_added: int = 0
    open_shops: int = 0
    total_deposits: float = 0.0

    def as_dict(self):
        return asdict(self)


def today_local():
    return datetime.now(config.TIMEZONE).date()


def as_date(value):
    """datetime, date or ISO string -> date; anything else -> None."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(config.TIMEZONE)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return as_date(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


def is_same_day(value, today):
    return as_date(value) == today


def is_same_month(value, year, month):
    d = as_date(value)
    return d is not None and d.year == year and d.month == month


def _amount(record):
    try:
        return float(record.get("amount") or 0)
    except (TypeError, ValueError):
        return 0.0


def agent_report(agent, daily_added, clients, deposits, today=None) -> AgentReport:
    if not agent:
        return AgentReport()
    today = today or today_local()
    y, m = today.year, today.month

    mine = [c for c in daily_added if c.get("assignedAgent") == agent]
    added_today = sum(1 for c in mine if is_same_day(c.get("date"), today))
    monthly_added = sum(1 for c in mine if is_same_month(c.get("date"), y, m))
    open_shops = sum(1 for c in clients
                     if c.get("agent") == agent and is_same_month(c.get("kycCompletedDate"), y, m))
    total_deposits = sum(_amount(d) for d in deposits
                         if d.get("agent") == agent and is_same_month(d.get("date"), y, m))
    return AgentReport(added_today, monthly_added, open_shops, round(total_deposits, 2))


def display_agents(agents):
    return [a for a in agents if a.get("role") != config.SUPERADMIN]


def team_performance(agents, daily_added, clients, deposits, withdrawals, stored=None, today=None):
    """One row per displayed agent; admin-edited documents override the figures."""
    stored = stored or {}
    today = today or today_local()
    y, m = today.year, today.month
    rows = []
    for agent in display_agents(agents):
        name = agent.get("name")
        report = agent_report(name, daily_added, clients, deposits, today=today)
        computed = {
            "addedToday": report.added_today,
            "monthlyAdded": report.monthly_added,
            "openAccounts": report.open_shops,
            "totalDeposits": report.total_deposits,
            "totalWithdrawals": round(sum(_amount(w) for w in withdrawals
                                          if w.get("agent") == name
                                          and is_same_month(w.get("date"), y, m)), 2),
        }
        saved = stored.get(name)
        # rows without lastEditedBy still count as overrides
        edited = bool(saved) and saved.get("lastEditedBy") != "System"
        row = {"agentName": name}
        for key, value in computed.items():
            row[key] = saved.get(key, value) if edited else value
        row["lastEditedBy"] = (saved or {}).get("editor") or "System"
        rows.append(row)
    return rows


def daily_added_summary(records, agents, today=None):
    today = today or today_local()
    y, m = today.year, today.month
    per_agent = {a.get("name"): {"daily": 0, "monthly": 0} for a in agents}
    daily = monthly = 0
    for r in records:
        is_today = is_same_day(r.get("date"), today)
        in_month = is_same_month(r.get("date"), y, m)
        daily += is_today
        monthly += in_month
        counts = per_agent.get(r.get("assignedAgent"))
        if counts is not None:
            counts["daily"] += is_today
            counts["monthly"] += in_month
    return {"daily": daily, "monthly": monthly, "total": len(records), "agents": per_agent}


AGE_BUCKETS = (("18-25", 18, 25), ("26-35", 26, 35), ("36-45", 36, 45),
               ("46-55", 46, 55), ("56+", 56, None))


def age_distribution(records):
    counts = {label: 0 for label, _, _ in AGE_BUCKETS}
    counts["Unknown"] = 0
    for r in records:
        try:
            age = int(r.get("age"))
        except (TypeError, ValueError):
            counts["Unknown"] += 1
            continue
        for label, low, high in AGE_BUCKETS:
            if age >= low and (high is None or age <= high):
                counts[label] += 1
                break
        else:
            counts["Unknown"] += 1
    return [{"name": k, "count": v} for k, v in counts.items()]


def _leaderboard(agents, value_of):
    board = [{"agentName": a.get("name"), "value": value_of(a.get("name"))} for a in agents]
    board.sort(key=lambda row: row["value"], reverse=True)
    return board[:config.LEADERBOARD_SIZE]


def monthly_dashboard(agents, clients, deposits, withdrawals, daily_added, year, month):
    def in_month(value):
        return is_same_month(value, year, month)

    month_clients = [c for c in clients if in_month(c.get("kycCompletedDate"))]
    month_deposits = [d for d in deposits if in_month(d.get("date"))]
    month_withdrawals = [w for w in withdrawals if in_month(w.get("date"))]
    month_added = [c for c in daily_added if in_month(c.get("date"))]
    shown = display_agents(agents)
    return {
        "year": year,
        "month": month,
        "clients": len(month_clients),
        "deposits": round(sum(_amount(d) for d in month_deposits), 2),
        "withdrawals": round(sum(_amount(w) for w in month_withdrawals), 2),
        "topDeposits": _leaderboard(shown, lambda name: round(
            sum(_amount(d) for d in month_deposits if d.get("agent") == name), 2)),
        "topShops": _leaderboard(shown, lambda name: sum(
            1 for c in month_clients if c.get("agent") == name)),
        "topClientsAdded": _leaderboard(shown, lambda name: sum(
            1 for c in month_added if c.get("assignedAgent") == name)),
    }


def device_counts(inventory):
    counts = {}
    for device in inventory:
        counts[device.get("agent")] = counts.get(device.get("agent"), 0) + 1
    return counts


def total_amount(records):
    return round(sum(_amount(r) for r in records), 2)


def agent_totals(deposits, withdrawals):
    return {"deposits": total_amount(deposits), "withdrawals": total_amount(withdrawals)}


def has_client_notes(entry):
    return bool(entry.get("conversationSummary") or entry.get("planForTomorrow"))


def _figure(value):
    # 300.0 -> "300", 12.5 -> "12.5"
    return str(int(value)) if float(value).is_integer() else str(value)


def daily_report_text(agent, report, entries, today=None):
    """End-of-day report an agent pastes into chat.

    ``entries`` are client note dicts (camelCase keys). Entries with neither a
    conversation summary nor a plan are left out but keep their number.
    """
    today = today or today_local()
    lines = [
        f"Agent Report - {today.month}/{today.day}/{today.year}",
        "",
        "AGENT INFORMATION:",
        f"Name: {agent}",
        f"Added Client Today: {report.added_today}",
        f"Monthly Client Added: {report.monthly_added}",
        f"Open Shops: {report.open_shops}",
        f"Deposits: {_figure(report.total_deposits)}",
        "",
        "CLIENT INFORMATION:",
        "",
    ]
    for number, entry in enumerate(entries, 1):
        if not has_client_notes(entry):
            continue
        lines += [
            f"CLIENT {number}:",
            f"Shop ID: {entry.get('shopId') or 'None'}",
            f"Client Details: {entry.get('clientDetails') or 'None'}",
            f"Assets: {entry.get('assets') or 'None'}",
            f"Conversation Summary: {entry.get('conversationSummary', '')}",
            f"Plan for Tomorrow: {entry.get('planForTomorrow', '')}",
            "",
        ]
    return "\n".join(lines)
