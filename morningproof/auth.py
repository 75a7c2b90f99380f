import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from morningproof.constants import API_KEY

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)):
    """Only the Morning Proof client holding MORNINGPROOF_API_KEY may call /api routes"""
    if not api_key or not secrets.compare_digest(api_key, API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or wrong X-API-Key for Morning Proof"
        )
    return api_key
