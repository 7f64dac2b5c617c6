# app.py
import io
import json
import logging
import threading
from datetime import datetime, timezone
from functools import wraps

from flask import Flask, g, jsonify, request, send_file, session
from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError

import config
import csv_import
import database
import stats
from datastore import DataStore
from errors import AuthError, DashboardError, DuplicateError, NotFoundError, PermissionDenied
from identity import IdentityClient
from parsing import parse_client_details
from schemas import (AbsenceForm, AgentForm, AgentStatusForm, BulkDeleteForm, BulkStatusForm,
                     ClientForm, DailyAddedClientForm, DailyReportForm, DeviceForm,
                     DeviceUpdateForm, LoginForm, OrderForm, OrderStatusForm, ParseDetailsForm,
                     PenaltyForm, RewardForm, SignupForm, TeamPerformanceForm, TransactionForm)

# logging
logging.basicConfig(level=config.LOG_LEVEL,
                    format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Flask
app = Flask(__name__)
app.secret_key = config.SECRET_KEY

identity = IdentityClient()

_store = None
_store_lock = threading.Lock()


def get_store():
    """Shared live cache, subscribed on first use."""
    global _store
    with _store_lock:
        if _store is None:
            _store = DataStore(database.get_db())
        if not _store.running:
            _store.start()
    if _store.loading and not _store.wait_until_loaded(config.STORE_LOAD_TIMEOUT):
        logger.warning("Data still loading after %.0fs, serving partial data",
                       config.STORE_LOAD_TIMEOUT)
    return _store


def collection(name):
    return database.get_db().collection(name)


def payload():
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    return data


def now_utc():
    return datetime.now(timezone.utc)


def serialize(items):
    return [database.serialize_record(i) for i in items]


# ---------- ERRORS ----------
@app.errorhandler(DashboardError)
def handle_dashboard_error(exc):
    return jsonify({"success": False, "message": exc.message}), exc.status_code


@app.errorhandler(ValidationError)
def handle_validation_error(exc):
    errors = [{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]}
              for e in exc.errors()]
    return jsonify({"success": False, "message": "Invalid form data", "errors": errors}), 400


@app.errorhandler(google_exceptions.GoogleAPICallError)
def handle_backend_error(exc):
    logger.exception("Firestore request failed")
    return jsonify({"success": False, "message": "Something went wrong. Please try again."}), 502


@app.errorhandler(csv_import.CsvFormatError)
def handle_csv_error(exc):
    return jsonify({"success": False, "message": str(exc)}), 400


# ---------- AUTH ----------
def load_profile(uid):
    doc = collection(config.AGENTS).document(uid).get()
    if not doc.exists:
        return None
    return database.to_record(doc)


def check_status(profile):
    status = profile.get("status")
    if status == "Pending":
        raise AuthError("Your account is waiting for an admin to approve it.", status_code=403)
    if status == "Rejected":
        raise AuthError("Your account has been rejected. Please contact an administrator.",
                        status_code=403)


def role_required(*roles):
    """Require a logged-in, approved agent; optionally one of ``roles``."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            uid = session.get("uid")
            if not uid:
                return jsonify({"success": False, "message": "Login required"}), 401
            profile = load_profile(uid)
            if profile is None:
                session.clear()
                return jsonify({"success": False, "message": "Login required"}), 401
            try:
                check_status(profile)
            except AuthError:
                session.clear()
                raise
            if roles and profile.get("role") not in roles:
                return jsonify({"success": False, "message": "Not allowed"}), 403
            g.user = profile
            return f(*args, **kwargs)
        return decorated
    return decorator


login_required = role_required()
managers_only = role_required(*config.MANAGERS)


def is_manager():
    return g.user.get("role") in config.MANAGERS


def require_manager():
    if not is_manager():
        raise PermissionDenied("Only admins can do this")


def check_role_grant(role):
    if role == config.SUPERADMIN and g.user.get("role") != config.SUPERADMIN:
        raise PermissionDenied("Only a superadmin can grant the superadmin role")


@app.route("/api/signup", methods=["POST"])
def api_signup():
    form = SignupForm.model_validate(payload())
    uid = identity.create_user(form.email, form.password)
    first = not any(True for _ in collection(config.AGENTS).limit(1).stream())
    role = config.SUPERADMIN if first else config.AGENT
    profile = {
        "uid": uid,
        "name": form.name,
        "email": form.email,
        "agentType": form.agent_type,
        "role": role,
        "status": "Active" if first else "Pending",
        "dateHired": now_utc(),
    }
    collection(config.AGENTS).document(uid).set(profile)
    logger.info("Signup: uid=%s role=%s", uid, role)
    if first:
        session["uid"] = uid
    return jsonify({"success": True, "role": role, "status": profile["status"]}), 201


@app.route("/api/login", methods=["POST"])
def api_login():
    form = LoginForm.model_validate(payload())
    uid = identity.sign_in(form.email, form.password)
    profile = load_profile(uid)
    if profile is None:
        logger.warning("No profile found for user %s", uid)
        raise AuthError("No profile found for this account.")
    check_status(profile)
    session["uid"] = uid
    logger.info("Login success: uid=%s", uid)
    return jsonify({"success": True, "user": database.serialize_record(profile)})


@app.route("/logout", methods=["GET", "POST"])
def logout():
    session.clear()
    return jsonify({"success": True})


@app.route("/api/me")
@login_required
def api_me():
    return jsonify({"user": database.serialize_record(g.user)})


# ---------- DASHBOARD ----------
@app.route("/")
@login_required
def dashboard():
    store = get_store()
    counts = {name: len(store.records(name)) for name in config.LIST_COLLECTIONS}
    return jsonify({"counts": counts,
                    "pendingAgents": sum(1 for a in store.records(config.AGENTS)
                                         if a.get("status") == "Pending"),
                    "pendingOrders": sum(1 for o in store.records(config.ORDERS)
                                         if o.get("status") == "Pending")})


def month_arg():
    today = stats.today_local()
    try:
        year = int(request.args.get("year", today.year))
        month = int(request.args.get("month", today.month))
    except ValueError:
        raise DashboardError("month and year must be numbers") from None
    if not 1 <= month <= 12:
        raise DashboardError("month must be between 1 and 12")
    return year, month


@app.route("/api/dashboard")
@login_required
def api_dashboard():
    store = get_store()
    year, month = month_arg()
    data = stats.monthly_dashboard(
        store.records(config.AGENTS), store.records(config.CLIENTS),
        store.records(config.DEPOSITS), store.records(config.WITHDRAWALS),
        store.records(config.DAILY_ADDED), year, month)
    return jsonify(data)


# ---------- LIST HELPERS ----------
def visible(name):
    """Managers see every record, agents only their own."""
    agent = None if is_manager() else g.user.get("name")
    return get_store().records(name, agent=agent)


def filter_records(items, name, date_field=None, search_fields=()):
    field = config.agent_field(name)
    agent = request.args.get("agent")
    if agent:
        items = [i for i in items if i.get(field) == agent]
    if date_field and (request.args.get("month") or request.args.get("year")):
        year, month = month_arg()
        items = [i for i in items if stats.is_same_month(i.get(date_field), year, month)]
    q = request.args.get("q", "").strip().lower()
    if q:
        items = [i for i in items
                 if any(q in str(i.get(f) or "").lower() for f in search_fields)]
    return items


def get_existing(name, doc_id):
    ref = collection(name).document(doc_id)
    snap = ref.get()
    if not snap.exists:
        raise NotFoundError("Record not found")
    return ref, database.to_record(snap)


def bulk_delete(name):
    form = BulkDeleteForm.model_validate(payload())
    batch = database.get_db().batch()
    for doc_id in form.ids:
        batch.delete(collection(name).document(doc_id))
    batch.commit()
    logger.info("Deleted %d records from %s", len(form.ids), name)
    return jsonify({"success": True, "deleted": len(form.ids)})


def import_rows(name, preview):
    rows = csv_import.ready_rows(preview)
    if request.args.get("dry_run") in ("1", "true") or not rows:
        return jsonify({"success": bool(rows), "imported": 0, "preview": [
            {**p, "data": database.serialize_record(p["data"])} for p in preview]})
    batch = database.get_db().batch()
    for row in rows:
        batch.set(collection(name).document(), row)
    batch.commit()
    logger.info("Imported %d rows into %s", len(rows), name)
    return jsonify({"success": True, "imported": len(rows), "skipped": len(preview) - len(rows)})


def uploaded_file():
    f = request.files.get("file")
    if not f:
        raise DashboardError("No file uploaded")
    return f.stream.read()


def export_csv(rows, header, filename):
    buf = csv_import.rows_to_csv_bytes(rows, header)
    return send_file(buf, as_attachment=True, download_name=filename, mimetype="text/csv")


# ---------- AGENTS ----------
@app.route("/api/agents", methods=["GET", "POST"])
@login_required
def api_agents():
    if request.method == "GET":
        agents = get_store().records(config.AGENTS)
        if request.args.get("display"):
            agents = stats.display_agents(agents)
        return jsonify({"agents": serialize(agents)})
    require_manager()
    form = AgentForm.model_validate(payload())
    check_role_grant(form.role)
    uid = identity.create_user(form.email, form.password)
    collection(config.AGENTS).document(uid).set({
        "uid": uid,
        "name": form.name,
        "email": form.email,
        "agentType": form.agent_type,
        "role": form.role,
        "status": "Active",
        "dateHired": form.date_hired or now_utc(),
    })
    logger.info("Agent registered by %s: uid=%s", g.user.get("name"), uid)
    return jsonify({"success": True, "uid": uid}), 201


@app.route("/api/agents/<id>", methods=["PATCH"])
@managers_only
def api_agent_item(id):
    form = AgentStatusForm.model_validate(payload())
    ref, agent = get_existing(config.AGENTS, id)
    update = form.to_document()
    if not update:
        return jsonify({"success": True})
    if agent.get("role") == config.SUPERADMIN and g.user.get("role") != config.SUPERADMIN:
        raise PermissionDenied("Only a superadmin can change a superadmin")
    check_role_grant(form.role)
    ref.update(update)
    logger.info("Agent %s updated by %s: %s", id, g.user.get("name"), update)
    return jsonify({"success": True})


def agent_records(name):
    store = get_store()
    data = {col: store.records(col, agent=name)
            for col in (config.CLIENTS, config.DEPOSITS, config.WITHDRAWALS, config.INVENTORY,
                        config.ORDERS, config.ABSENCES, config.PENALTIES, config.REWARDS)}
    totals = stats.agent_totals(data[config.DEPOSITS], data[config.WITHDRAWALS])
    return jsonify({"agent": name, "totals": totals,
                    **{col: serialize(items) for col, items in data.items()}})


@app.route("/api/agents/<id>/records")
@managers_only
def api_agent_records(id):
    agent = get_store().get(config.AGENTS, id)
    if agent is None:
        raise NotFoundError("Agent not found")
    return agent_records(agent.get("name"))


@app.route("/api/profile")
@login_required
def api_profile():
    return agent_records(g.user.get("name"))


# ---------- SHOPS (CLIENTS) ----------
def check_shop_id_free(shop_id, own_id=None):
    found = database.find_one(config.CLIENTS, "shopId", shop_id)
    if found is not None and found.id != own_id:
        raise DuplicateError("This Shop ID is already in use. Please choose another.")


@app.route("/api/clients", methods=["GET", "POST"])
@login_required
def api_clients():
    if request.method == "GET":
        items = filter_records(visible(config.CLIENTS), config.CLIENTS, "kycCompletedDate",
                               ("shopId", "clientName", "agent", "status"))
        if request.args.get("status"):
            items = [c for c in items if c.get("status") == request.args["status"]]
        return jsonify({"clients": serialize(items)})
    data = payload()
    if not is_manager():
        data["agent"] = g.user.get("name")
    form = ClientForm.model_validate(data)
    check_shop_id_free(form.shop_id)
    _, ref = collection(config.CLIENTS).add(form.to_document())
    logger.info("Shop %s added by %s", form.shop_id, g.user.get("name"))
    return jsonify({"success": True, "id": ref.id}), 201


@app.route("/api/clients/<id>", methods=["PUT", "DELETE"])
@managers_only
def api_client_item(id):
    ref, current = get_existing(config.CLIENTS, id)
    if request.method == "PUT":
        form = ClientForm.model_validate(payload())
        if form.shop_id != current.get("shopId"):
            check_shop_id_free(form.shop_id, own_id=id)
        ref.update(form.to_document())
        return jsonify({"success": True})
    ref.delete()
    return jsonify({"success": True})


@app.route("/api/clients/bulk-delete", methods=["POST"])
@managers_only
def api_clients_bulk_delete():
    return bulk_delete(config.CLIENTS)


@app.route("/api/clients/bulk-status", methods=["POST"])
@managers_only
def api_clients_bulk_status():
    form = BulkStatusForm.model_validate(payload())
    batch = database.get_db().batch()
    for doc_id in form.ids:
        batch.update(collection(config.CLIENTS).document(doc_id), {"status": form.status})
    batch.commit()
    return jsonify({"success": True, "updated": len(form.ids)})


@app.route("/api/clients/import", methods=["POST"])
@managers_only
def api_clients_import():
    raw = uploaded_file()
    existing = {c.get("shopId") for c in get_store().records(config.CLIENTS)}
    preview = csv_import.validate_clients(raw, existing)
    return import_rows(config.CLIENTS, preview)


@app.route("/api/clients/export")
@login_required
def api_clients_export():
    rows = visible(config.CLIENTS)
    header = ["id", "shopId", "clientName", "agent", "kycCompletedDate", "status", "clientDetails"]
    return export_csv(rows, header, "clients.csv")


# ---------- DAILY ADDED ----------
@app.route("/api/daily-added", methods=["GET", "POST"])
@login_required
def api_daily_added():
    if request.method == "GET":
        items = filter_records(visible(config.DAILY_ADDED), config.DAILY_ADDED, "date",
                               ("name", "location", "work", "assignedAgent"))
        return jsonify({"clients": serialize(items)})
    details = ParseDetailsForm.model_validate(payload()).details
    parsed = parse_client_details(details)
    form = DailyAddedClientForm(name=parsed.name, age=parsed.age,
                                location=parsed.location, work=parsed.work)
    doc = form.to_document(assignedAgent=g.user.get("name"), date=now_utc())
    _, ref = collection(config.DAILY_ADDED).add(doc)
    logger.info("Daily client %s added by %s", form.name, g.user.get("name"))
    return jsonify({"success": True, "id": ref.id,
                    "client": database.serialize_record(doc)}), 201


@app.route("/api/daily-added/<id>", methods=["PUT", "DELETE"])
@managers_only
def api_daily_added_item(id):
    ref, _ = get_existing(config.DAILY_ADDED, id)
    if request.method == "PUT":
        form = DailyAddedClientForm.model_validate(payload())
        ref.update(form.to_document())
        return jsonify({"success": True})
    ref.delete()
    return jsonify({"success": True})


@app.route("/api/daily-added/bulk-delete", methods=["POST"])
@managers_only
def api_daily_added_bulk_delete():
    return bulk_delete(config.DAILY_ADDED)


@app.route("/api/daily-added/stats")
@login_required
def api_daily_added_stats():
    records = visible(config.DAILY_ADDED)
    agents = [] if not is_manager() else get_store().records(config.AGENTS)
    summary = stats.daily_added_summary(records, agents)
    summary["ages"] = stats.age_distribution(records)
    return jsonify(summary)


@app.route("/api/daily-added/export")
@login_required
def api_daily_added_export():
    header = ["id", "name", "age", "location", "work", "assignedAgent", "date"]
    return export_csv(visible(config.DAILY_ADDED), header, "daily_added.csv")


# ---------- DEPOSITS / WITHDRAWALS ----------
TRANSACTIONS = "<any(deposits, withdrawals):name>"


@app.route(f"/api/{TRANSACTIONS}", methods=["GET", "POST"])
@login_required
def api_transactions(name):
    if request.method == "GET":
        items = filter_records(visible(name), name, "date",
                               ("shopId", "clientName", "agent", "paymentMode"))
        items.sort(key=lambda t: stats.as_date(t.get("date")) or datetime.min.date(), reverse=True)
        return jsonify({name: serialize(items), "total": stats.total_amount(items)})
    data = payload()
    if not is_manager():
        data["agent"] = g.user.get("name")
    form = TransactionForm.model_validate(data)
    _, ref = collection(name).add(form.to_document())
    logger.info("%s of %.2f recorded for shop %s", name, form.amount, form.shop_id)
    return jsonify({"success": True, "id": ref.id}), 201


@app.route(f"/api/{TRANSACTIONS}/<id>", methods=["PUT", "DELETE"])
@managers_only
def api_transaction_item(name, id):
    ref, _ = get_existing(name, id)
    if request.method == "PUT":
        form = TransactionForm.model_validate(payload())
        ref.update(form.to_document())
        return jsonify({"success": True})
    ref.delete()
    return jsonify({"success": True})


@app.route(f"/api/{TRANSACTIONS}/bulk-delete", methods=["POST"])
@managers_only
def api_transactions_bulk_delete(name):
    return bulk_delete(name)


@app.route(f"/api/{TRANSACTIONS}/import", methods=["POST"])
@managers_only
def api_transactions_import(name):
    raw = uploaded_file()
    store = get_store()
    names = [a.get("name") for a in store.records(config.AGENTS)]
    preview = csv_import.validate_transactions(raw, store.records(config.CLIENTS), names)
    return import_rows(name, preview)


@app.route(f"/api/{TRANSACTIONS}/export")
@login_required
def api_transactions_export(name):
    header = ["id", "shopId", "clientName", "agent", "date", "amount", "paymentMode"]
    return export_csv(visible(name), header, f"{name}.csv")


# ---------- INVENTORY ----------
def check_imei_free(imei, own_id=None):
    for doc in collection(config.INVENTORY).where("imei", "==", imei).stream():
        if doc.id != own_id:
            raise DuplicateError("This IMEI already exists in the inventory")


@app.route("/api/inventory", methods=["GET", "POST"])
@login_required
def api_inventory():
    if request.method == "GET":
        items = filter_records(visible(config.INVENTORY), config.INVENTORY, None,
                               ("agent", "imei", "model", "color", "appleIdUsername",
                                "appleIdPassword", "remarks"))
        return jsonify({"inventory": serialize(items)})
    form = DeviceForm.model_validate(payload())
    if not is_manager():
        form.agent = g.user.get("name")
    if not form.agent:
        raise DashboardError("Agent is required.")
    check_imei_free(form.imei)
    doc = form.to_document(createdAt=firestore.SERVER_TIMESTAMP,
                           updatedAt=firestore.SERVER_TIMESTAMP)
    _, ref = collection(config.INVENTORY).add(doc)
    logger.info("Device %s added for %s", form.imei, form.agent)
    return jsonify({"success": True, "id": ref.id}), 201


@app.route("/api/inventory/<id>", methods=["PUT", "DELETE"])
@login_required
def api_inventory_item(id):
    ref, device = get_existing(config.INVENTORY, id)
    if not is_manager() and device.get("agent") != g.user.get("name"):
        raise PermissionDenied("Not allowed")
    if request.method == "PUT":
        form = DeviceUpdateForm.model_validate(payload())
        if form.imei:
            check_imei_free(form.imei, own_id=id)
        update = form.to_document(updatedAt=firestore.SERVER_TIMESTAMP)
        if not is_manager():
            update.pop("agent", None)
        ref.update(update)
        return jsonify({"success": True})
    ref.delete()
    return jsonify({"success": True})


@app.route("/api/inventory/stats")
@login_required
def api_inventory_stats():
    return jsonify({"agents": stats.device_counts(visible(config.INVENTORY))})


# ---------- ORDERS ----------
@app.route("/api/orders", methods=["GET", "POST"])
@login_required
def api_orders():
    if request.method == "GET":
        items = filter_records(visible(config.ORDERS), config.ORDERS, None,
                               ("shopId", "location", "remarks", "agent"))
        status = request.args.get("status")
        if status:
            items = [o for o in items if o.get("status") == status]
        return jsonify({"orders": serialize(items)})
    data = payload()
    if not is_manager():
        data["agent"] = g.user.get("name")
    form = OrderForm.model_validate(data)
    _, ref = collection(config.ORDERS).add(
        form.to_document(status="Pending", createdAt=now_utc()))
    logger.info("Order requested for shop %s by %s", form.shop_id, g.user.get("name"))
    return jsonify({"success": True, "id": ref.id}), 201


@app.route("/api/orders/<id>/status", methods=["POST", "PATCH"])
@managers_only
def api_order_status(id):
    form = OrderStatusForm.model_validate(payload())
    ref, _ = get_existing(config.ORDERS, id)
    ref.update({"status": form.status})
    return jsonify({"success": True, "status": form.status})


# ---------- TEAM PERFORMANCE ----------
@app.route("/api/team-performance")
@managers_only
def api_team_performance():
    store = get_store()
    rows = stats.team_performance(
        store.records(config.AGENTS), store.records(config.DAILY_ADDED),
        store.records(config.CLIENTS), store.records(config.DEPOSITS),
        store.records(config.WITHDRAWALS), store.team_performance())
    return jsonify({"teamPerformance": rows})


@app.route("/api/team-performance/<agent_name>", methods=["PUT"])
@managers_only
def api_team_performance_save(agent_name):
    form = TeamPerformanceForm.model_validate(payload())
    store = get_store()
    rows = stats.team_performance(
        store.records(config.AGENTS), store.records(config.DAILY_ADDED),
        store.records(config.CLIENTS), store.records(config.DEPOSITS),
        store.records(config.WITHDRAWALS), store.team_performance())
    current = next((r for r in rows if r["agentName"] == agent_name), None)
    if current is None:
        raise NotFoundError("Agent not found")
    data = {**current, **form.to_document(), "lastEditedBy": "Admin", "editor": g.user.get("name")}
    collection(config.TEAM_PERFORMANCE).document(agent_name).set(data, merge=True)
    logger.info("Performance for %s overridden by %s", agent_name, g.user.get("name"))
    return jsonify({"success": True, "row": data})


RECORD_FORMS = {config.ABSENCES: AbsenceForm, config.PENALTIES: PenaltyForm,
                config.REWARDS: RewardForm}


@app.route("/api/<any(absences, penalties, rewards):name>", methods=["GET", "POST"])
@login_required
def api_agent_records_list(name):
    if request.method == "GET":
        items = filter_records(visible(name), name, "date", ("agent", "remarks"))
        return jsonify({name: serialize(items)})
    require_manager()
    form = RECORD_FORMS[name].model_validate(payload())
    _, ref = collection(name).add(form.to_document())
    logger.info("%s recorded for %s", name, form.agent)
    return jsonify({"success": True, "id": ref.id}), 201


# ---------- REPORTS ----------
def report_of(agent):
    store = get_store()
    return stats.agent_report(agent, store.records(config.DAILY_ADDED),
                              store.records(config.CLIENTS), store.records(config.DEPOSITS))


def report_for(agent):
    return jsonify({"agent": agent, **report_of(agent).as_dict()})


@app.route("/api/reports/agent")
@managers_only
def api_report_agent():
    return report_for(request.args.get("agent", "").strip())


@app.route("/api/reports/me")
@login_required
def api_report_me():
    return report_for(g.user.get("name"))


def client_notes():
    form = DailyReportForm.model_validate(payload())
    entries = [c.to_document() for c in form.clients]
    if not any(stats.has_client_notes(e) for e in entries):
        raise DashboardError(
            "Please fill in some client information before generating a report.")
    return entries


@app.route("/api/reports/me/text", methods=["POST"])
@login_required
def api_report_text():
    entries = client_notes()
    name = g.user.get("name")
    text = stats.daily_report_text(name, report_of(name), entries)
    return jsonify({"success": True, "report": text})


@app.route("/api/reports/me/export", methods=["POST"])
@login_required
def api_report_export():
    entries = client_notes()
    name = g.user.get("name")
    exported = now_utc()
    data = {"agent": name, "stats": report_of(name).as_dict(), "clients": entries,
            "exportedAt": exported.isoformat()}
    buf = io.BytesIO(json.dumps(data, indent=2).encode("utf-8"))
    return send_file(buf, as_attachment=True, mimetype="application/json",
                     download_name=f"report_{name}_{exported.date().isoformat()}.json")


# ---------- run ----------
if __name__ == "__main__":
    app.run(debug=config.DEBUG)
