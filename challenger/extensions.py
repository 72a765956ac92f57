"""Flask extensions for the application."""
from flask_mail import Mail
from flask_wtf.csrf import CSRFProtect

from .events import EventChannel

mail = Mail()
csrf = CSRFProtect()
event_channel = EventChannel()
