from sqlalchemy.orm import Session

from circulation.core.config import settings
from circulation.core.logging import get_logger
from circulation.core.security import hash_password
from circulation.db.models import User, UserRole

logger = get_logger("circulation.init_admin")


def ensure_builtin_admin(db: Session) -> User:
    admin = db.query(User).filter(User.email == settings.BUILTIN_ADMIN_EMAIL).first()
    if admin:
        return admin

    admin = User(
        email=settings.BUILTIN_ADMIN_EMAIL,
        full_name="Built-in Admin",
        hashed_password=hash_password(settings.BUILTIN_ADMIN_PASSWORD),
        role=UserRole.ADMIN,
        is_active=True,
        is_approved=True,
    )
    db.add(admin)
    db.commit()

    logger.info(
        "builtin_admin_created",
        extra={"operation": "init_admin", "resource": "user", "email": admin.email},
    )
    return admin
