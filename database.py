# database.py
import logging
from datetime import date, datetime

import firebase_admin
from firebase_admin import credentials, firestore

import config

logger = logging.getLogger(__name__)

_client = None


def get_db():
    """Firestore client, initialising the Firebase app on first use."""
    global _client
    if _client is None:
        if not firebase_admin._apps:
            if config.FIREBASE_CREDENTIALS:
                cred = credentials.Certificate(config.FIREBASE_CREDENTIALS)
                firebase_admin.initialize_app(cred)
            else:
                firebase_admin.initialize_app()
            logger.info("Firebase app initialised")
        _client = firestore.client()
    return _client


def set_db(client):
    global _client
    _client = client


def coerce_datetime(value):
    # Firestore hands back aware UTC timestamps
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(config.TIMEZONE)
    return value


def to_record(snapshot):
    """Document snapshot -> plain dict with its id and local datetimes."""
    item = {"id": snapshot.id, **(snapshot.to_dict() or {})}
    for key, value in item.items():
        item[key] = coerce_datetime(value)
    return item


def serialize_record(record):
    if not record:
        return record
    out = {}
    for k, v in record.items():
        if isinstance(v, (datetime, date)):
            out[k] = v.isoformat()
        else:
            out[k] = v
    return out


def find_one(collection, field, value):
    """First document where ``field == value``, or None."""
    for doc in get_db().collection(collection).where(field, "==", value).limit(1).stream():
        return doc
    return None
