from .error_handler import ErrorNotifier
from .fetch_videos import VideoFetcher
from .generate_titles import TitleGenerator
from .intake import Intake, SubmissionError
from .resolve_channel import ChannelResolver
from .send_email import EmailNotifier

__all__ = [
    "ChannelResolver",
    "EmailNotifier",
    "ErrorNotifier",
    "Intake",
    "SubmissionError",
    "TitleGenerator",
    "VideoFetcher",
]
