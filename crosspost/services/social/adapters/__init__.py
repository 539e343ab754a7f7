from .facebook_adapter import FacebookAdapter
from .instagram_adapter import InstagramAdapter
from .tiktok_adapter import TikTokAdapter
from .wordpress_adapter import WordPressAdapter
from .youtube_adapter import YouTubeAdapter
from .zalo_adapter import ZaloAdapter

__all__ = [
    "FacebookAdapter",
    "InstagramAdapter",
    "TikTokAdapter",
    "WordPressAdapter",
    "YouTubeAdapter",
    "ZaloAdapter",
]
