"""
Authentication utilities for Supabase access tokens

Authentication itself is handled by Supabase Auth. The backend only verifies
the access tokens it issues: HS256 JWTs signed with the project's JWT secret,
audience "authenticated", subject = user id.
"""

import jwt
from typing import Optional

from config import SUPABASE_JWT_SECRET, SUPABASE_JWT_AUDIENCE

JWT_ALGORITHM = 'HS256'

if not SUPABASE_JWT_SECRET:
    raise ValueError("SUPABASE_JWT_SECRET environment variable must be set")


def decode_token(token: str) -> dict:
    """
    Decode and validate a Supabase access token

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        ValueError: If token is expired or invalid
    """
    try:
        return jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE,
            options={'require': ['exp', 'sub']}
        )
    except jwt.ExpiredSignatureError:
        raise ValueError('Token has expired')
    except jwt.InvalidTokenError:
        raise ValueError('Invalid token')


def verify_token(token: Optional[str]) -> dict:
    """
    Verify an access token and return the user it belongs to

    Args:
        token: Bearer token (without the "Bearer " prefix)

    Returns:
        {'id', 'email', 'user_metadata'}

    Raises:
        ValueError: If the token is missing, expired or invalid
    """
    if not token:
        raise ValueError('No token provided')

    payload = decode_token(token)
    return {
        'id': payload['sub'],
        'email': payload.get('email'),
        'user_metadata': payload.get('user_metadata') or {},
    }


def bearer_token(auth_header: Optional[str]) -> str:
    """
    Extract the token from an Authorization header

    Raises:
        ValueError: If the header is missing or not "Bearer <token>"
    """
    if not auth_header:
        raise ValueError('No authorization header')

    parts = auth_header.split(' ')
    if len(parts) != 2 or parts[0] != 'Bearer':
        raise ValueError('Invalid authorization header format')

    return parts[1]


def display_name(user: dict) -> str:
    """Username shown to other listeners"""
    return (user.get('user_metadata') or {}).get('username') or 'User'
