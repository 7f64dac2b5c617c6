# csv_import.py
"""Validate uploaded CSV files before they are written in one batch.

Every row comes back with a status: ``Ready to Import``, ``Duplicate ID`` or
``Invalid Data`` (with a reason), so the caller can preview the file and then
write only the ready rows.
"""
import csv
import io
from datetime import datetime

import config

READY = "Ready to Import"
DUPLICATE = "Duplicate ID"
INVALID = "Invalid Data"

CLIENT_HEADERS = ("shopId", "clientName", "agent", "kycCompletedDate", "status")
TRANSACTION_HEADERS = ("shopid", "agent", "date", "amount", "payment")

DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%m/%d/%Y", "%d/%m/%Y",
                "%m/%d/%Y %H:%M", "%a %b %d %Y %H:%M:%S", "%B %d, %Y")


class CsvFormatError(ValueError):
    pass


def read_rows(raw):
    """bytes or str -> (headers, rows); header names are stripped."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise CsvFormatError("File must be UTF-8 encoded CSV") from None
    reader = csv.DictReader(io.StringIO(raw, newline=None))
    headers = [h.strip() for h in (reader.fieldnames or [])]
    rows = []
    for row in reader:
        cleaned = {(k or "").strip(): (v or "").strip() for k, v in row.items() if k is not None}
        if any(cleaned.values()):
            rows.append(cleaned)
    return headers, rows


def parse_date(value):
    if not value:
        return None
    value = value.strip()
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    # "Mon Jan 01 2024 10:00:00 GMT+0800 (...)" as exported by browsers
    head = " ".join(value.split(" ")[:5])
    for fmt in DATE_FORMATS:
        for candidate in (value, head):
            try:
                return datetime.strptime(candidate, fmt)
            except ValueError:
                continue
    return None


def validate_clients(raw, existing_shop_ids):
    headers, rows = read_rows(raw)
    missing = [h for h in CLIENT_HEADERS if h not in headers]
    if missing:
        raise CsvFormatError("CSV must contain the headers: " + ", ".join(CLIENT_HEADERS))

    seen = set(existing_shop_ids)
    preview = []
    for row in rows:
        shop_id = row.get("shopId", "")
        if shop_id in seen:
            preview.append({"data": row, "status": DUPLICATE, "reason": "Shop ID already exists."})
            continue
        kyc_date = parse_date(row.get("kycCompletedDate"))
        if kyc_date is None:
            preview.append({"data": row, "status": INVALID,
                            "reason": "Invalid date format for kycCompletedDate."})
            continue
        if row.get("status") not in config.CLIENT_STATUSES:
            preview.append({"data": row, "status": INVALID,
                            "reason": "Status must be one of: " + ", ".join(config.CLIENT_STATUSES)})
            continue
        if not shop_id or not row.get("clientName") or not row.get("agent"):
            preview.append({"data": row, "status": INVALID,
                            "reason": "shopId, clientName and agent are required."})
            continue
        seen.add(shop_id)
        preview.append({"status": READY, "data": {
            "shopId": shop_id,
            "clientName": row["clientName"],
            "agent": row["agent"],
            "kycCompletedDate": kyc_date,
            "status": row["status"],
            "clientDetails": row.get("clientDetails", ""),
        }})
    return preview


def normalize_payment_mode(value):
    lowered = (value or "").strip().lower()
    if lowered in ("ewallet", "online banking", "ewallet/online banking"):
        return "Ewallet/Online Banking"
    if lowered == "crypto":
        return "Crypto"
    return None


def validate_transactions(raw, clients, agent_names):
    headers, rows = read_rows(raw)
    lookup = {h.lower(): h for h in headers}
    if not all(h in lookup for h in TRANSACTION_HEADERS):
        raise CsvFormatError("CSV must contain headers: " + ", ".join(TRANSACTION_HEADERS))

    clients_by_shop = {str(c.get("shopId", "")).lower(): c for c in clients}
    known_agents = {name.lower(): name for name in agent_names if name}
    preview = []
    for row in rows:
        def value(key):
            return row.get(lookup[key], "")

        client = clients_by_shop.get(value("shopid").lower())
        if client is None:
            preview.append({"data": row, "status": INVALID, "reason": "Shop ID not found."})
            continue
        agent = known_agents.get(value("agent").lower())
        if agent is None:
            preview.append({"data": row, "status": INVALID,
                            "reason": f"Agent '{value('agent')}' not found."})
            continue
        when = parse_date(value("date"))
        if when is None:
            preview.append({"data": row, "status": INVALID, "reason": "Invalid date format."})
            continue
        mode = normalize_payment_mode(value("payment"))
        if mode is None:
            preview.append({"data": row, "status": INVALID,
                            "reason": "Invalid payment mode. Use Ewallet, Online Banking, or Crypto."})
            continue
        try:
            amount = float(value("amount"))
        except ValueError:
            amount = 0.0
        if not amount > 0:
            preview.append({"data": row, "status": INVALID,
                            "reason": "Amount must be a positive number."})
            continue
        preview.append({"status": READY, "data": {
            "shopId": client["shopId"],
            "clientName": client.get("clientName", ""),
            "agent": agent,
            "date": when,
            "amount": amount,
            "paymentMode": mode,
        }})
    return preview


def ready_rows(preview):
    return [row["data"] for row in preview if row["status"] == READY]


def rows_to_csv_bytes(rows, header):
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(header)
    for r in rows:
        w.writerow([_cell(r.get(k, "")) for k in header])
    out.seek(0)
    return io.BytesIO(out.getvalue().encode())


def _cell(value):
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return value
