from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from src.auth.utils import verify_token
from src.auth.schemas import AuthenticatedPrincipal, Role

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

def get_current_principal(token: str = Depends(oauth2_scheme)) -> AuthenticatedPrincipal:
    """Resolve the bearer token into an explicit principal"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = verify_token(token, credentials_exception)
    return AuthenticatedPrincipal(id=token_data.user_id, role=token_data.role)

def require_fleet_manager(principal: AuthenticatedPrincipal = Depends(get_current_principal)):
    """Require a company or admin principal"""
    if principal.role not in (Role.COMPANY, Role.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return principal
