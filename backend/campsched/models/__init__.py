from campsched.models.activity_history import BunkActivityHistory  # noqa: F401
from campsched.models.activity_log import ActivityLog  # noqa: F401
from campsched.models.camp_settings import CampSettings  # noqa: F401
from campsched.models.day_schedule import DaySchedule  # noqa: F401
from campsched.models.notification import Notification, NotificationType  # noqa: F401
from campsched.models.resource_lock import ResourceLock  # noqa: F401
from campsched.models.user import FULL_ACCESS_ROLES, User, UserRole  # noqa: F401
