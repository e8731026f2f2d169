"""
Authentication middleware for Supabase JWT verification.

Reporters authenticate with the Supabase session token issued to the mobile
app. Every report endpoint also carries the reporter's userId explicitly;
require_same_user rejects requests where that id is not the token's subject.

Performance notes:
- get_current_user verifies JWTs locally with python-jose when SUPABASE_JWT_SECRET
  is set, avoiding a network round-trip to the Supabase Auth API.
"""

import os
from typing import Optional

from fastapi import HTTPException, Header
from jose import jwt, JWTError, ExpiredSignatureError

from app.db import supabase

# ---------------------------------------------------------------------------
# Module-level JWT secret: loaded once at startup.
# Set SUPABASE_JWT_SECRET in your environment (Project Settings > API > JWT Secret).
# When not set the implementation falls back to the Supabase Auth API.
# ---------------------------------------------------------------------------
SUPABASE_JWT_SECRET: Optional[str] = os.environ.get("SUPABASE_JWT_SECRET") or None


async def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract and verify JWT token from Authorization header.

    Args:
        authorization: Authorization header with format "Bearer <token>"

    Returns:
        user_id: Authenticated user's ID (the JWT ``sub`` claim)

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired
    """
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Missing bearer token"
        )

    # Extract token from "Bearer <token>" format (scheme is case-insensitive)
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication credentials"
        )

    token = parts[1]

    if SUPABASE_JWT_SECRET:
        return _verify_jwt_locally(token)

    return await _verify_jwt_remotely(token)


def _verify_jwt_locally(token: str) -> str:
    """
    Verify a Supabase JWT locally (HS256, project JWT secret) and return the user ID.

    Raises:
        HTTPException 401 on any verification failure.
    """
    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},  # Supabase JWTs use 'authenticated' role, not a fixed audience
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    return user_id


async def _verify_jwt_remotely(token: str) -> str:
    """
    Verify a JWT via the Supabase Auth API (fallback when no JWT secret is set).

    Raises:
        HTTPException 401 on any verification failure.
    """
    try:
        response = supabase.auth.get_user(token)

        if not response.user:
            raise HTTPException(
                status_code=401,
                detail="Invalid token"
            )

        return response.user.id

    except HTTPException:
        raise
    except Exception as e:
        if "expired" in str(e).lower():
            raise HTTPException(
                status_code=401,
                detail="Token expired"
            )

        raise HTTPException(
            status_code=401,
            detail="Invalid token"
        )


def require_same_user(auth_user_id: str, requested_user_id: str, where: str = "payload") -> None:
    """
    Reject a request whose declared userId is not the authenticated user.

    Raises:
        HTTPException: 403 on mismatch
    """
    if not auth_user_id or auth_user_id != requested_user_id:
        raise HTTPException(
            status_code=403,
            detail=f"User mismatch between token and {where}."
        )
