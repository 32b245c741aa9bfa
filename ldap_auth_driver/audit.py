from __future__ import annotations

from sqlalchemy.orm import Session

from .models import LoginAudit


def audit_login(
    db: Session,
    username: str,
    success: bool,
    ip: str,
    ua: str,
    result_code: str,
) -> None:
    db.add(
        LoginAudit(
            username=username[:128],
            success=success,
            ip=ip[:64],
            user_agent=ua[:512],
            result_code=result_code,
        )
    )
    db.commit()
