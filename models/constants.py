FORUM_CATEGORIES = [
    ("medical_aid", "Medical Aid"),
    ("community", "Community"),
    ("education", "Education"),
    ("environment", "Environment"),
    ("islamic_studies", "Islamic Studies"),
    ("support", "Support"),
    ("general_discussion", "General Discussion"),
]
CATEGORY_COLORS = {
    "medical_aid": "bg-red-500/20 text-red-400",
    "community": "bg-green-500/20 text-green-400",
    "education": "bg-blue-500/20 text-blue-400",
    "environment": "bg-emerald-500/20 text-emerald-400",
    "islamic_studies": "bg-purple-500/20 text-purple-400",
    "support": "bg-orange-500/20 text-orange-400",
    "general_discussion": "bg-gray-500/20 text-gray-400",
}
DEFAULT_CATEGORY_COLOR = "bg-gray-500/20 text-gray-400"
GALLERY_CATEGORIES = ["Events", "Environment", "Education", "Medical Aid", "Islamic Studies", "Community"]
BLOG_CATEGORIES = [
    "Islamic Teachings", "Healthcare", "Environment", "Education", "Community Events", "Youth Development"
]
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
ALLOWED_MIME_TYPES = {'image/png', 'image/jpeg', 'image/jpg', 'image/gif', 'image/webp'}
# Avatars are shrunk to fit this box before they are stored
AVATAR_MAX_SIZE = (300, 300)
AVATAR_QUALITY = 70
UPLOAD_MAX_MB = 5
AVATAR_MAX_MB = 1
RECENT_ACTIVITY_LIMIT = 3
WORDS_PER_MINUTE = 200
