from .health import health_bp
from .auth import auth_bp
from .venues import venues_bp
from .slots import slots_bp
from .booking import booking_bp
from .matches import matches_bp
from .notifications import notifications_bp
from .reports import reports_bp
from .admin import admin_bp
from .reviews import reviews_bp
