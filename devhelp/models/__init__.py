from .user import User, DeveloperProfile
from .help_request import HelpRequest, RequestHistory
from .application import HelpRequestMatch
from .notification import Notification
from .chat import ChatMessage
