"""
Shared firebase-admin app initialization.

The document store, identity provider and notification relay reuse the same
default app (same credentials_path and project_id).
"""

import json
from pathlib import Path
from typing import Optional, Union

import firebase_admin
from firebase_admin import credentials


def project_id_from_credentials_file(credentials_path: Union[Path, str]) -> Optional[str]:
    """Read project_id from a Google service account JSON file if present."""
    path = Path(credentials_path)
    if not path.is_file():
        return None
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return None
    return data.get("project_id") or data.get("projectId")


def ensure_firebase_app(
    project_id: Optional[str] = None,
    credentials_path: Optional[Union[Path, str]] = None,
) -> None:
    """Initialize the default firebase-admin app once per process."""
    if firebase_admin._apps:
        return
    opts = {"projectId": project_id} if project_id else None
    if credentials_path:
        cred = credentials.Certificate(str(Path(credentials_path).resolve()))
        firebase_admin.initialize_app(cred, opts)
    else:
        firebase_admin.initialize_app(options=opts)
