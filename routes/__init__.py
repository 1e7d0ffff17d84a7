from .health import health_bp
from .booking import booking_bp
from .catalog import catalog_bp
from .packages import packages_bp
