"""Authentication module: email/password identities and JWT sessions.

This module provides:
1. Sign-up, which inserts an identity; the on_identity_created trigger
   provisions the matching profile (and seller row for seller sign-ups)
2. Sign-in with password verification and profile repair
3. Single active session per identity
4. Dependencies for protecting routes
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import asyncpg
from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

from config import settings_conf
from database import get_pool, translate_db_error
from errors import ConstraintViolation
from profiles.provisioning import provision_profile

# Configure logging
logger = logging.getLogger(__name__)

# Constants
SESSION_EXPIRY_DAYS = settings_conf['session_expiry_days']
JWT_SECRET = settings_conf['jwt_secret'] or secrets.token_urlsafe(32)  # Random secret when unset
JWT_ALGORITHM = settings_conf['jwt_algorithm']
MIN_PASSWORD_LENGTH = 6

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class InvalidCredentialsError(AuthError):
    """Raised when email or password do not match an identity."""
    pass

class SessionExpiredError(AuthError):
    """Raised when a session has expired."""
    pass

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def _request_metadata(request: Optional[Request]):
    if not request:
        return None, None
    host = request.client.host if request.client else None
    return request.headers.get('user-agent'), host

class AuthManager:
    """Manages identities and sessions."""

    def __init__(self, pool=None):
        """Initialize auth manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure database pool is available."""
        if not self.pool:
            self.pool = await get_pool()

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        role: str = 'buyer',
        store_name: Optional[str] = None,
        request: Optional[Request] = None
    ) -> Dict[str, Any]:
        """Create an identity and open a session for it.

        The profile is created by the database trigger from the metadata
        stored with the identity, never by this method.

        Args:
            email: Login email, unique across identities
            password: Plain-text password
            full_name: Display name for the profile
            role: 'buyer' or 'seller'
            store_name: Store name for seller sign-ups
            request: Optional request object for session metadata

        Returns:
            Dict containing token, expires_at and user_id

        Raises:
            ConstraintViolation: If the email is taken or a value is invalid
        """
        await self.ensure_pool()

        if len(password) < MIN_PASSWORD_LENGTH:
            raise ConstraintViolation(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                field='password',
                constraint='min_length'
            )
        if role not in ('buyer', 'seller'):
            raise ConstraintViolation("Invalid role", field='role', value=role, constraint='profiles_role_check')

        metadata = {'full_name': full_name or '', 'role': role}
        if store_name:
            metadata['store_name'] = store_name

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    identity_id = await conn.fetchval(
                        '''
                        INSERT INTO identities (email, password_hash, raw_user_meta_data)
                        VALUES ($1, $2, $3)
                        RETURNING id
                        ''',
                        email.strip().lower(),
                        hash_password(password),
                        metadata
                    )
                    session = await self._create_session(conn, identity_id, request)

            logger.info(f"Signed up identity {identity_id} as {role}")
            return session

        except asyncpg.UniqueViolationError:
            raise ConstraintViolation("Email is already registered", field='email', constraint='identities_email_key')
        except asyncpg.PostgresError as e:
            logger.error(f"Error signing up: {e}")
            raise translate_db_error(e)

    async def sign_in(
        self,
        email: str,
        password: str,
        request: Optional[Request] = None
    ) -> Dict[str, Any]:
        """Verify credentials and create a session.

        Args:
            email: Login email
            password: Plain-text password
            request: Optional request object for session metadata

        Returns:
            Dict containing token, expires_at and user_id

        Raises:
            InvalidCredentialsError: If the email or password is wrong
        """
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                identity = await conn.fetchrow(
                    '''
                    SELECT id, email, password_hash, raw_user_meta_data
                    FROM identities
                    WHERE email = $1
                    ''',
                    email.strip().lower()
                )

                if not identity or not verify_password(password, identity['password_hash']):
                    raise InvalidCredentialsError("Invalid email or password")

                async with conn.transaction():
                    # Repair identities created before provisioning existed
                    if await provision_profile(conn, identity):
                        logger.warning(f"Provisioned missing profile for identity {identity['id']}")
                    return await self._create_session(conn, identity['id'], request)

        except AuthError:
            raise
        except asyncpg.PostgresError as e:
            logger.error(f"Error signing in: {e}")
            raise translate_db_error(e)

    async def _create_session(self, conn, identity_id, request: Optional[Request]) -> Dict[str, Any]:
        """Issue a JWT for an identity, revoking its previous sessions."""
        expires_at = datetime.now(timezone.utc) + timedelta(days=SESSION_EXPIRY_DAYS)

        token = jwt.encode(
            {
                'sub': str(identity_id),
                'exp': int(expires_at.timestamp()),
                'jti': secrets.token_hex(8)
            },
            JWT_SECRET,
            algorithm=JWT_ALGORITHM
        )

        await conn.execute(
            '''
            UPDATE auth_sessions
            SET revoked = true, revoked_at = now()
            WHERE identity_id = $1 AND NOT revoked
            ''',
            identity_id
        )

        user_agent, ip_address = _request_metadata(request)
        await conn.execute(
            '''
            INSERT INTO auth_sessions (
                identity_id, token, expires_at,
                user_agent, ip_address
            ) VALUES ($1, $2, $3, $4, $5)
            ''',
            identity_id,
            token,
            expires_at,
            user_agent,
            ip_address
        )

        return {
            'token': token,
            'expires_at': expires_at.isoformat(),
            'user_id': str(identity_id)
        }

    async def verify_session(
        self,
        token: str,
        request: Optional[Request] = None
    ) -> str:
        """Verify a session token.

        Args:
            token: The session token to verify
            request: Optional request object for updating session metadata

        Returns:
            The authenticated identity id

        Raises:
            SessionExpiredError: If session has expired
            AuthError: For other verification errors
        """
        await self.ensure_pool()

        try:
            payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
            identity_id = payload['sub']
        except ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except (JWTError, KeyError) as e:
            raise AuthError(f"Invalid token: {str(e)}")

        try:
            async with self.pool.acquire() as conn:
                session = await conn.fetchrow(
                    '''
                    SELECT id, expires_at
                    FROM auth_sessions
                    WHERE identity_id = $1 AND token = $2
                    AND NOT revoked
                    ''',
                    identity_id,
                    token
                )

                if not session:
                    raise AuthError("Session not found or revoked")

                if session['expires_at'] < datetime.now(timezone.utc):
                    raise SessionExpiredError("Session has expired")

                if request:
                    user_agent, ip_address = _request_metadata(request)
                    await conn.execute(
                        '''
                        UPDATE auth_sessions
                        SET
                            last_used_at = now(),
                            user_agent = $2,
                            ip_address = $3
                        WHERE id = $1
                        ''',
                        session['id'],
                        user_agent,
                        ip_address
                    )

                return str(identity_id)

        except AuthError:
            raise
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Error verifying session: {e}")
            raise translate_db_error(e)

    async def logout(self, identity_id: str):
        """Log out by revoking the active session.

        Args:
            identity_id: Identity to log out
        """
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    '''
                    UPDATE auth_sessions
                    SET
                        revoked = true,
                        revoked_at = now()
                    WHERE identity_id = $1
                    AND NOT revoked
                    ''',
                    identity_id
                )
        except asyncpg.PostgresError as e:
            logger.error(f"Error logging out: {e}")
            raise translate_db_error(e)

# Create global instance
manager = AuthManager()

# FastAPI security schemes
auth_scheme = HTTPBearer(
    auto_error=True,  # Return 401 automatically if token is missing
    description="JWT Bearer token required"
)
optional_auth_scheme = HTTPBearer(auto_error=False)

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)
) -> str:
    """FastAPI dependency for getting the authenticated identity.

    Args:
        request: The FastAPI request
        credentials: Bearer token credentials

    Returns:
        The authenticated identity id

    Raises:
        HTTPException: If authentication fails
    """
    try:
        return await manager.verify_session(credentials.credentials, request)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired"
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_auth_scheme)
) -> Optional[str]:
    """Like get_current_user, but anonymous requests resolve to None."""
    if credentials is None:
        return None
    return await get_current_user(request, credentials)

# Export public interface
__all__ = [
    'manager',
    'AuthManager',
    'get_current_user',
    'get_optional_user',
    'hash_password',
    'verify_password',
    'AuthError',
    'InvalidCredentialsError',
    'SessionExpiredError'
]
