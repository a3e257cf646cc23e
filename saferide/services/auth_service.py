"""
Authentication Service

Firebase Admin SDK integration for token verification.
"""

import logging
from typing import Optional

import firebase_admin
from firebase_admin import auth as firebase_auth, credentials, exceptions as firebase_exceptions

from saferide.config import settings

logger = logging.getLogger(__name__)


# =============================================================================
# Firebase Initialization
# =============================================================================

_firebase_app = None


def init_firebase():
    """
    Initialize Firebase Admin SDK. The same app serves token verification
    and FCM pushes.

    SECURITY: The service account credentials must be kept secure.
    Never log or expose the credentials.
    """
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    creds = settings.firebase_credentials
    if creds is None:
        raise RuntimeError(
            "Firebase credentials not configured. "
            "Set FIREBASE_SERVICE_ACCOUNT_JSON or FIREBASE_SERVICE_ACCOUNT_PATH in .env"
        )

    cred = credentials.Certificate(creds)
    options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
    _firebase_app = firebase_admin.initialize_app(cred, options)
    return _firebase_app


def verify_firebase_token(id_token: str) -> Optional[dict]:
    """
    Verify a Firebase ID token and return the decoded claims, or None.

    SECURITY: This is the authoritative verification of user identity.
    The token is verified against Firebase's public keys.
    """
    try:
        return firebase_auth.verify_id_token(id_token)
    except (firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError):
        return None
    except (ValueError, firebase_exceptions.FirebaseError) as e:
        logger.warning(f"Firebase token verification failed: {e}")
        return None
