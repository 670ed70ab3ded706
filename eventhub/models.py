from datetime import date, datetime, timezone
from flask_login import UserMixin

ROLES = ('staff', 'admin')
ACTIVITY_TYPES = ('practice', 'race', 'meeting', 'other')
RELATED_TYPES = ('veteran', 'race_team', 'event', 'general')


def parse_timestamp(value):
    """Parse an ISO timestamp from the backend into an aware datetime (or None)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).strip().replace('Z', '+00:00')
    # postgres may send fractional seconds with more than 6 digits
    if '.' in text:
        head, _, tail = text.partition('.')
        digits = ''.join(ch for ch in tail if ch.isdigit())
        rest = tail[len(digits):]
        text = f'{head}.{digits[:6]}{rest}'
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def parse_date(value):
    if not value:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        return None


class Record:
    """Thin attribute view over a row dict returned by the backend."""
    __tablename__ = None
    # (column, label) pairs editable through the screen's form
    fields = ()
    required = ()
    order_by = 'created_at'

    def __init__(self, row=None):
        self._row = dict(row or {})

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        return self._row.get(name)

    def __eq__(self, other):
        return isinstance(other, Record) and self.__tablename__ == other.__tablename__ and self.id == other.id

    def __hash__(self):
        return hash((self.__tablename__, self.id))

    def to_dict(self):
        return dict(self._row)

    @classmethod
    def field_names(cls):
        return [name for name, _ in cls.fields]

    @classmethod
    def label_for(cls, column):
        return dict(cls.fields).get(column, column)

    @property
    def created(self):
        return parse_timestamp(self._row.get('created_at'))

    @property
    def updated(self):
        return parse_timestamp(self._row.get('updated_at'))


class User(UserMixin, Record):
    """Profile row from the `users` table, also the Flask-Login user."""
    __tablename__ = 'users'
    order_by = 'created_at'

    @property
    def role(self):
        role = self._row.get('role')
        return role if role in ROLES else 'staff'

    @property
    def is_admin(self):
        return self.role == 'admin'

    def has_role(self, role_name):
        return self.role == role_name

    def get_role_names(self):
        return [self.role]

    def get_id(self):
        return str(self.id)

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'


class Veteran(Record):
    __tablename__ = 'veterans'
    fields = (
        ('first_name', 'First name'),
        ('last_name', 'Last name'),
        ('email', 'Email'),
        ('phone', 'Phone'),
        ('military_branch', 'Military branch'),
        ('service_years', 'Service years'),
        ('medical_notes', 'Medical notes'),
        ('emergency_contact_name', 'Emergency contact name'),
        ('emergency_contact_phone', 'Emergency contact phone'),
        ('race_team_name', 'Race team'),
    )
    required = ('first_name', 'last_name', 'military_branch')
    order_by = 'last_name'

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self):
        return f'<Veteran {self.full_name}>'


class RaceTeam(Record):
    __tablename__ = 'race_teams'
    fields = (
        ('name', 'Team name'),
        ('contact_name', 'Contact name'),
        ('contact_email', 'Contact email'),
        ('contact_phone', 'Contact phone'),
        ('vehicle_info', 'Vehicle info'),
        ('notes', 'Notes'),
    )
    required = ('name', 'contact_name', 'contact_email', 'contact_phone')
    order_by = 'name'

    def __repr__(self):
        return f'<RaceTeam {self.name}>'


class Event(Record):
    __tablename__ = 'events'
    fields = (
        ('name', 'Event name'),
        ('date', 'Date'),
        ('start_time', 'Start time'),
        ('end_time', 'End time'),
        ('location', 'Location'),
        ('description', 'Description'),
    )
    required = ('name', 'date', 'location')
    order_by = 'date'

    @property
    def event_date(self):
        return parse_date(self._row.get('date'))

    def is_upcoming(self, today=None):
        today = today or date.today()
        event_date = self.event_date
        return bool(event_date and event_date > today)

    def __repr__(self):
        return f'<Event {self.name} {self.date}>'


class Activity(Record):
    __tablename__ = 'activities'
    fields = (
        ('activity_type', 'Activity type'),
        ('scheduled_time', 'Scheduled time'),
        ('veteran_id', 'Veteran'),
        ('event_id', 'Event'),
        ('notes', 'Notes'),
    )
    required = ('activity_type', 'scheduled_time')
    order_by = 'scheduled_time'

    TYPE_LABELS = {
        'practice': 'Practice',
        'race': 'Race',
        'meeting': 'Meeting',
        'other': 'Other',
    }

    def __init__(self, row=None, veteran=None, event=None):
        super().__init__(row)
        self.veteran = veteran
        self.event = event

    @property
    def type_label(self):
        return self.TYPE_LABELS.get(self.activity_type, self.activity_type)

    @property
    def scheduled(self):
        return parse_timestamp(self._row.get('scheduled_time'))

    def __repr__(self):
        return f'<Activity {self.activity_type} {self.scheduled_time}>'


class FileAttachment(Record):
    __tablename__ = 'file_attachments'
    order_by = 'created_at'

    @property
    def is_image(self):
        return (self.file_type or '').startswith('image/')

    @property
    def is_pdf(self):
        return self.file_type == 'application/pdf'

    def __repr__(self):
        return f'<FileAttachment {self.filename}>'


class Notification(Record):
    __tablename__ = 'notifications'


class UserNotification(Record):
    """Per-user delivery row; `notification` is the embedded parent row."""
    __tablename__ = 'user_notifications'

    def __init__(self, row=None):
        super().__init__(row)
        parent = self._row.get('notification')
        self.notification = Notification(parent) if parent else None

    @property
    def title(self):
        return self.notification.title if self.notification else None

    @property
    def message(self):
        return self.notification.message if self.notification else None
