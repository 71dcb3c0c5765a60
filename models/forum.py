from extensions import db
from datetime import datetime
from models.constants import FORUM_CATEGORIES, CATEGORY_COLORS, DEFAULT_CATEGORY_COLOR
from models.utils import relative_time, initials_from_name
from models.user import User, PLACEHOLDER_AVATAR

CATEGORY_LABELS = dict(FORUM_CATEGORIES)


class ForumPost(db.Model):
    __tablename__ = 'forum_posts'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(64), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    author_name = db.Column(db.String(128), nullable=False, default="Anonymous")
    author_email = db.Column(db.String(120), default="")
    likes = db.Column(db.Integer, default=0, nullable=False)
    views = db.Column(db.Integer, default=0, nullable=False)
    is_pinned = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    replies = db.relationship('ForumReply', backref='post', lazy=True, cascade='all, delete-orphan')
    post_likes = db.relationship('PostLike', backref='post', lazy=True, cascade='all, delete-orphan')


class ForumReply(db.Model):
    __tablename__ = 'forum_replies'
    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.Integer, db.ForeignKey('forum_posts.id', ondelete='CASCADE'), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('forum_replies.id', ondelete='CASCADE'), nullable=True)
    content = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    author_name = db.Column(db.String(128), nullable=False, default="Anonymous")
    author_email = db.Column(db.String(120), default="")
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    children = db.relationship(
        'ForumReply',
        backref=db.backref('parent', remote_side=[id]),
        lazy=True,
        cascade='all, delete'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'post_id': self.post_id,
            'parent_id': self.parent_id,
            'content': self.content,
            'author_id': self.author_id,
            'author_name': self.author_name,
            'created_at': self.created_at,
        }


class PostLike(db.Model):
    __tablename__ = 'post_likes'
    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.Integer, db.ForeignKey('forum_posts.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    __table_args__ = (
        db.UniqueConstraint('post_id', 'user_id', name='uq_post_like'),
    )


def category_label(value):
    return CATEGORY_LABELS.get(value, value)


def category_color(value):
    return CATEGORY_COLORS.get(value, DEFAULT_CATEGORY_COLOR)


def category_slug(label):
    return "_".join(label.lower().split())


def build_reply_tree(replies):
    """
    Shape a flat, oldest-first list of reply dicts for one post.

    Top-level replies (no parent) come back in order, each carrying a
    ``replies`` list with the replies whose ``parent_id`` is its id.
    Only one level is rebuilt; a reply to a nested reply has no top-level
    parent to hang from and is left out.
    """
    top_level = [reply for reply in replies if not reply.get('parent_id')]
    nested = [reply for reply in replies if reply.get('parent_id')]
    return [
        dict(comment, replies=[dict(reply) for reply in nested if reply['parent_id'] == comment['id']])
        for comment in top_level
    ]


def group_replies_by_post(replies):
    by_post = {}
    for reply in replies:
        by_post.setdefault(reply['post_id'], []).append(reply)
    return {post_id: build_reply_tree(items) for post_id, items in by_post.items()}


def count_replies(tree):
    return sum(1 + len(comment.get('replies', [])) for comment in tree)


def serialize_post(post, replies=None, liked_ids=(), author=None):
    if author is not None:
        initials, avatar = author.initials, author.avatar
    else:
        initials, avatar = initials_from_name(post.author_name), PLACEHOLDER_AVATAR
    return {
        'id': post.id,
        'title': post.title,
        'content': post.content,
        'author': post.author_name,
        'author_id': post.author_id,
        'author_initials': initials,
        'author_avatar': avatar,
        'category': category_label(post.category),
        'category_color': category_color(post.category),
        'time': post.created_at,
        'relative_time': relative_time(post.created_at),
        'replies': replies or [],
        'views': post.views or 0,
        'likes': post.likes or 0,
        'is_pinned': bool(post.is_pinned),
        'is_liked': post.id in liked_ids,
    }


def load_forum_feed(user):
    """Every post, newest first, with its reply tree and the viewer's like flag."""
    posts = ForumPost.query.order_by(ForumPost.created_at.desc(), ForumPost.id.desc()).all()
    post_ids = [post.id for post in posts]
    if not post_ids:
        return []
    authors = {u.id: u for u in User.query.filter(User.id.in_({p.author_id for p in posts})).all()}
    replies = ForumReply.query.filter(ForumReply.post_id.in_(post_ids)) \
        .order_by(ForumReply.created_at.asc(), ForumReply.id.asc()).all()
    trees = group_replies_by_post([reply.to_dict() for reply in replies])
    liked_ids = set()
    if user is not None and user.is_authenticated:
        liked_ids = {
            like.post_id for like in PostLike.query.filter(
                PostLike.user_id == user.id, PostLike.post_id.in_(post_ids)
            ).all()
        }
    return [
        serialize_post(post, trees.get(post.id, []), liked_ids, authors.get(post.author_id))
        for post in posts
    ]


def load_post_detail(post, user):
    replies = ForumReply.query.filter_by(post_id=post.id) \
        .order_by(ForumReply.created_at.asc(), ForumReply.id.asc()).all()
    liked_ids = set()
    if user is not None and user.is_authenticated:
        if PostLike.query.filter_by(post_id=post.id, user_id=user.id).first():
            liked_ids.add(post.id)
    author = db.session.get(User, post.author_id)
    return serialize_post(post, build_reply_tree([r.to_dict() for r in replies]), liked_ids, author)


def category_counts(posts):
    counts = {}
    for post in posts:
        counts[post['category']] = counts.get(post['category'], 0) + 1
    categories = [{'name': 'All', 'count': len(posts), 'value': 'all'}]
    categories.extend(
        {'name': name, 'count': count, 'value': category_slug(name)} for name, count in counts.items()
    )
    return categories


def filter_posts(posts, category='all', term=''):
    term = (term or '').lower()
    category = category or 'all'
    return [
        post for post in posts
        if (category == 'all' or category_slug(post['category']) == category)
        and (term in post['title'].lower() or term in post['content'].lower() or term in post['author'].lower())
    ]
