from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import AccountCredentialIssuer, CredentialIssuer
from app.db.base import get_db


def get_actor(x_actor: Optional[str] = Header(None)) -> str:
    """Name recorded in audit entries.

    Authentication happens in front of this service; the gateway forwards the
    operator name in the ``X-Actor`` header.
    """
    return (x_actor or settings.DEFAULT_ACTOR or "admin").strip()


def get_credential_issuer(db: Session = Depends(get_db)) -> CredentialIssuer:
    return AccountCredentialIssuer(db)
