from .db import db
from .tenant import Tenant
from .service import Service
from .customer import Customer
from .slot import Slot
from .booking_lock import BookingLock
from .package import ServicePackage, PackageService
from .package_subscription import PackageSubscription, PackageSubscriptionUsage
from .booking import Booking, BookingPackageAllocation
from .package_exhaustion_notification import PackageExhaustionNotification
from .audit_log import AuditLog
