from .db import db, ConnectionCache
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .sport import Sport
from .venue import Venue
from .court import Court
from .slot import TimeSlot
from .booking import Booking
from .match import Match, match_participants
from .notification import Notification
from .report import Report
from .review import Review
