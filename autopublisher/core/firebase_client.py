import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore

logger = logging.getLogger(__name__)

_firebase_app: Optional[firebase_admin.App] = None
_db: Optional[firestore.Client] = None


def _init_firebase() -> None:
    global _firebase_app, _db
    if _firebase_app is not None and _db is not None:
        return
    project_id = os.getenv("FIREBASE_PROJECT_ID")
    credentials_path = os.getenv("FIREBASE_CREDENTIALS_PATH")
    if not project_id or not credentials_path:
        raise RuntimeError("FIREBASE_PROJECT_ID and FIREBASE_CREDENTIALS_PATH must be configured")

    if not os.path.isabs(credentials_path):
        package_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        project_root = os.path.dirname(package_dir)

        possible_paths = [
            os.path.join(project_root, credentials_path),
            os.path.join(project_root, os.path.basename(credentials_path)),
            credentials_path,  # current working directory
        ]

        for path in possible_paths:
            if os.path.exists(path):
                credentials_path = os.path.abspath(path)
                logger.debug("Found Firebase credentials at: %s", credentials_path)
                break
        else:
            raise FileNotFoundError(
                f"Firebase credentials file not found. Tried: {', '.join(possible_paths)}. "
                f"Set FIREBASE_CREDENTIALS_PATH to an absolute path or ensure the file exists."
            )

    if not os.path.exists(credentials_path):
        raise FileNotFoundError(f"Firebase credentials file not found at: {credentials_path}")

    cred = credentials.Certificate(credentials_path)
    _firebase_app = firebase_admin.initialize_app(cred, {"projectId": project_id})
    _db = firestore.client()
    logger.info("Firebase initialized for project %s", project_id)


def get_firestore_client() -> firestore.Client:
    if _db is None:
        _init_firebase()
    assert _db is not None
    return _db
