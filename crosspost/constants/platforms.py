PLATFORM_INSTAGRAM = "instagram"
PLATFORM_FACEBOOK = "facebook"
PLATFORM_YOUTUBE = "youtube"
PLATFORM_WORDPRESS = "wordpress"
PLATFORM_TIKTOK = "tiktok"
PLATFORM_ZALO = "zalo"

SUPPORTED_PLATFORMS = (
    PLATFORM_INSTAGRAM,
    PLATFORM_FACEBOOK,
    PLATFORM_YOUTUBE,
    PLATFORM_WORDPRESS,
    PLATFORM_TIKTOK,
    PLATFORM_ZALO,
)

# Platforms whose credentials expire and are swept daily
REFRESHABLE_PLATFORMS = (
    PLATFORM_INSTAGRAM,
    PLATFORM_FACEBOOK,
    PLATFORM_YOUTUBE,
    PLATFORM_TIKTOK,
    PLATFORM_WORDPRESS,
)

MEDIA_IMAGE = "image"
MEDIA_VIDEO = "video"
MEDIA_TYPES = (MEDIA_IMAGE, MEDIA_VIDEO)

CONTENT_TYPE_POST = "post"
CONTENT_TYPE_CAROUSEL = "carousel"
CONTENT_TYPE_REEL = "reel"
CONTENT_TYPE_VIDEO = "video"
CONTENT_TYPE_ARTICLE = "article"
CONTENT_TYPES = (
    CONTENT_TYPE_POST,
    CONTENT_TYPE_CAROUSEL,
    CONTENT_TYPE_REEL,
    CONTENT_TYPE_VIDEO,
    CONTENT_TYPE_ARTICLE,
)

GRAPH_BASE = "https://graph.facebook.com"
INSTAGRAM_GRAPH_BASE = "https://graph.instagram.com"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
YOUTUBE_UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
TIKTOK_API_BASE = "https://open.tiktokapis.com"
WPCOM_API_BASE = "https://public-api.wordpress.com"
ZALO_OA_API_BASE = "https://openapi.zalo.me"
