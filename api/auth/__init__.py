"""Authentication API endpoints."""

from fastapi import APIRouter, HTTPException, Request, status, Security

from auth import manager, get_current_user, AuthError, InvalidCredentialsError
from models import SignUpRequest, SignInRequest, SessionResponse

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

@router.post("/signup", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(body: SignUpRequest, request: Request):
    """Create an account; the profile is provisioned by the database."""
    return await manager.sign_up(
        body.email,
        body.password,
        full_name=body.full_name,
        role=body.role.value,
        store_name=body.store_name,
        request=request
    )

@router.post("/login", response_model=SessionResponse)
async def login(body: SignInRequest, request: Request):
    """Verify email and password and create a session."""
    try:
        return await manager.sign_in(body.email, body.password, request)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

@router.post("/logout")
async def logout(user_id: str = Security(get_current_user)):
    """Log out the current user by revoking their session."""
    await manager.logout(user_id)
    return {"success": True}

@router.get("/verify")
async def verify_token(user_id: str = Security(get_current_user)):
    """Verify the current session token."""
    return {
        "valid": True,
        "user_id": user_id
    }

# Export the router
__all__ = ['router']
