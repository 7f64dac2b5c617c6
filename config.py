# config.py
import os
from zoneinfo import ZoneInfo

SECRET_KEY = os.environ.get("FLASK_SECRET", "supersecretkey")
DEBUG = os.environ.get("FLASK_DEBUG", "0") == "1"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# service account json; application default credentials when unset
FIREBASE_CREDENTIALS = os.environ.get("FIREBASE_CREDENTIALS", "")
# web api key used for email/password sign-in
FIREBASE_API_KEY = os.environ.get("FIREBASE_API_KEY", "")
IDENTITY_TIMEOUT = float(os.environ.get("IDENTITY_TIMEOUT", "10"))

TIMEZONE = ZoneInfo(os.environ.get("APP_TIMEZONE", "UTC"))
STORE_LOAD_TIMEOUT = float(os.environ.get("STORE_LOAD_TIMEOUT", "15"))

# Firestore collections
AGENTS = "agents"
CLIENTS = "clients"
DAILY_ADDED = "dailyAddedClients"
DEPOSITS = "deposits"
WITHDRAWALS = "withdrawals"
INVENTORY = "inventory"
ORDERS = "orders"
ABSENCES = "absences"
PENALTIES = "penalties"
REWARDS = "rewards"
TEAM_PERFORMANCE = "teamPerformance"

# collections mirrored as plain lists by the data store
LIST_COLLECTIONS = (AGENTS, CLIENTS, DAILY_ADDED, DEPOSITS, WITHDRAWALS,
                    INVENTORY, ORDERS, ABSENCES, PENALTIES, REWARDS)

# collections whose records carry an "agent" field
AGENT_FIELD = {
    CLIENTS: "agent",
    DAILY_ADDED: "assignedAgent",
    DEPOSITS: "agent",
    WITHDRAWALS: "agent",
    INVENTORY: "agent",
    ORDERS: "agent",
    ABSENCES: "agent",
    PENALTIES: "agent",
    REWARDS: "agent",
}

# roles
AGENT = "Agent"
ADMIN = "Admin"
SUPERADMIN = "Superadmin"
ROLES = (AGENT, ADMIN, SUPERADMIN)
MANAGERS = (ADMIN, SUPERADMIN)

AGENT_TYPES = ("Regular", "Elite", "Spammer", "Model", "Team Leader")
AGENT_STATUSES = ("Active", "Pending", "Rejected")
CLIENT_STATUSES = ("In Process", "Active", "Inactive", "Eliminated")
PAYMENT_MODES = ("Ewallet/Online Banking", "Crypto")
ORDER_STATUSES = ("Pending", "Approved", "Rejected")
REWARD_STATUSES = ("Claimed", "Unclaimed")

LEADERBOARD_SIZE = 10


def agent_field(collection: str):
    return AGENT_FIELD.get(collection, "agent")
