from models import db
from models.user import Role
from security.rbac import ROLES


def seed_roles():
    """Create whichever default roles are missing; returns their names."""
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in ROLES if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    if missing:
        db.session.commit()
    return missing
