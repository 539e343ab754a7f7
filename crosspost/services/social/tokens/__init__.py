from .facebook_token_manager import FacebookTokenManager
from .instagram_token_manager import InstagramTokenManager
from .tiktok_token_manager import TikTokTokenManager
from .wordpress_token_manager import WordPressTokenManager
from .youtube_token_manager import YouTubeTokenManager
from .zalo_token_manager import ZaloTokenManager

__all__ = [
    "FacebookTokenManager",
    "InstagramTokenManager",
    "TikTokTokenManager",
    "WordPressTokenManager",
    "YouTubeTokenManager",
    "ZaloTokenManager",
]
