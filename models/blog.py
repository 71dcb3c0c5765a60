from extensions import db
from datetime import datetime
import math
import re
from models.constants import WORDS_PER_MINUTE


class BlogPost(db.Model):
    __tablename__ = 'blog_posts'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), unique=True, nullable=False)
    excerpt = db.Column(db.String(500), default="")
    content = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(64), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    author = db.relationship('User', foreign_keys=[author_id])
    image_url = db.Column(db.String(255), nullable=True)
    read_time = db.Column(db.Integer, default=1)
    views = db.Column(db.Integer, default=0, nullable=False)
    likes = db.Column(db.Integer, default=0, nullable=False)
    featured = db.Column(db.Boolean, default=False)
    published_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def author_name(self):
        return self.author.display_name if self.author else "Community Team"


def slugify(title):
    slug = re.sub(r'[^a-z0-9\s-]', '', (title or '').lower())
    return re.sub(r'[\s-]+', '-', slug).strip('-') or 'post'


def unique_slug(title):
    base = slugify(title)
    slug, n = base, 2
    while BlogPost.query.filter_by(slug=slug).first():
        slug = f"{base}-{n}"
        n += 1
    return slug


def estimate_read_time(content):
    words = len((content or '').split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def make_excerpt(content, length=200):
    text = " ".join((content or '').split())
    if len(text) <= length:
        return text
    return text[:length].rsplit(' ', 1)[0] + '...'
