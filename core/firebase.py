# Ініціалізація сервісів Firebase Admin.
import logging

import firebase_admin
from firebase_admin import credentials, auth, firestore
from core.config import settings

logger = logging.getLogger(__name__)

db = None
auth_client = None


def initialize_firebase():
    global db, auth_client
    if not firebase_admin._apps:
        if settings.FIREBASE_SERVICE_ACCOUNT_KEY_PATH:
            cred = credentials.Certificate(settings.FIREBASE_SERVICE_ACCOUNT_KEY_PATH)
            firebase_admin.initialize_app(cred)
        else:
            # Application Default Credentials (Cloud Run, емулятор)
            firebase_admin.initialize_app()

    db = firestore.client()
    auth_client = auth
    logger.info("Firebase Firestore connected")


def ensure_initialized():
    if db is None or auth_client is None:
        initialize_firebase()
    return db
