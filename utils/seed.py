from models import db
from models.user import Role
from models.sport import Sport

DEFAULT_ROLES = ["PLAYER", "ADMIN", "SUPER_ADMIN"]
DEFAULT_SPORTS = ["Badminton", "Tennis", "Football", "Basketball", "Table Tennis", "Cricket"]

def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()

def seed_sports():
    existing = {s.name for s in Sport.query.all()}
    for name in DEFAULT_SPORTS:
        if name not in existing:
            db.session.add(Sport(name=name))
    db.session.commit()
