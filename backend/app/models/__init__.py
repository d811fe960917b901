from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.event import Event, EventType  # noqa: F401
from app.models.group import Group, GroupStudent, GroupTeacher, GroupTeacherRole  # noqa: F401
from app.models.notification import Notification, NotificationType  # noqa: F401
from app.models.schedule import GroupSchedule  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
