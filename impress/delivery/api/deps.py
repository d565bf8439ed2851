# impress/delivery/api/deps.py
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from impress.config.database import get_db
from impress.config.settings import settings
from impress.domain.product_templates import ProductTemplateLinks
from impress.domain.zone_store import ZoneStore
from impress.domain.zones import ContentMap
from impress.infrastructure.identity import IdentityProvider, authorize

security = HTTPBasic()


def verify_basic_auth(creds: HTTPBasicCredentials = Depends(security)) -> dict:
    ok_user = secrets.compare_digest(creds.username, settings.BASIC_AUTH_USERNAME)
    ok_pass = secrets.compare_digest(creds.password, settings.BASIC_AUTH_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return {"id": creds.username}


def require_admin(request: Request, user: dict = Depends(verify_basic_auth)) -> dict:
    identity: IdentityProvider = request.app.state.identity
    admin = authorize(identity, settings.ADMIN_ROLE, user)
    if admin is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return admin


def get_store(session: AsyncSession = Depends(get_db)) -> ZoneStore:
    return ZoneStore(session)


def get_links(session: AsyncSession = Depends(get_db)) -> ProductTemplateLinks:
    return ProductTemplateLinks(session)


def get_service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return service


def content_map(entries) -> ContentMap:
    return {(e.page_id, e.zone_id): e.content for e in entries}
