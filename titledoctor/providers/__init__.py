from .gemini import GeminiClient, GenerationError
from .mailer import DeliveryError, ResendMailer
from .youtube_api import ChannelRef, SearchVideo, YouTubeAPIClient, YouTubeAPIError

__all__ = [
    "ChannelRef",
    "DeliveryError",
    "GeminiClient",
    "GenerationError",
    "ResendMailer",
    "SearchVideo",
    "YouTubeAPIClient",
    "YouTubeAPIError",
]
