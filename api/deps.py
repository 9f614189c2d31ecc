# Залежності (Dependencies) для FastAPI
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin.auth import InvalidIdTokenError, ExpiredIdTokenError

import core.firebase as firebase
from core.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

LOCAL_DEV_USER = {"uid": "local-dev", "admin": True}


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> dict:
    """
    Перевіряє Firebase ID Token (приходить як Bearer token).
    Без токена повертає локального користувача, лише якщо DEV_AUTH_ENABLED.
    """
    if not creds or not creds.credentials:
        if settings.DEV_AUTH_ENABLED:
            return dict(LOCAL_DEV_USER)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if firebase.auth_client is None:
        firebase.initialize_firebase()
        if firebase.auth_client is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Firebase not initialized"
            )

    try:
        # Допуск по часу (макс 60 сек за Firebase SDK)
        return firebase.auth_client.verify_id_token(creds.credentials, clock_skew_seconds=60)
    except (ExpiredIdTokenError, InvalidIdTokenError) as e:
        logger.info("Token validation failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token invalid or expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Exception as e:
        logger.warning("Token validation error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("admin") or current_user.get("is_admin"):
        return current_user

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Admin access required",
    )
