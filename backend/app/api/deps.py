from collections.abc import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.context import ScheduleContext
from app.core.security import decode_token
from app.db.session import SessionLocal
from app.services.directory import SqlDirectory
from app.services.schedule_locks import ScheduleLocks

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_token_claims(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    try:
        payload = decode_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc
    if not payload.get("sub") or not payload.get("org"):
        raise credentials_exception
    return payload


def get_context(claims: dict = Depends(get_token_claims)) -> ScheduleContext:
    return ScheduleContext(organization_id=str(claims["org"]), actor_id=str(claims["sub"]))


def require_schedule_editor(
    claims: dict = Depends(get_token_claims),
    ctx: ScheduleContext = Depends(get_context),
) -> ScheduleContext:
    required = get_settings().schedule_edit_permission
    if required not in (claims.get("permissions") or []):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return ctx


def get_directory(db: Session = Depends(get_db)) -> SqlDirectory:
    return SqlDirectory(db)


def get_locks() -> ScheduleLocks:
    return ScheduleLocks(timeout_seconds=get_settings().schedule_lock_timeout_seconds)
