"""
Server actions: one function per user operation.

Each action does its single-table work against the database and returns an
action-state dict with ``success`` and/or ``error`` keys, which the views turn
into flash messages or JSON. Database errors roll the session back, get
logged and come back as an ``error`` string; they are never raised to the
view.
"""
import logging
import smtplib
from flask import current_app, url_for
from flask_login import login_user, logout_user
from flask_mail import Message
from itsdangerous import URLSafeTimedSerializer, BadSignature
from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError
from extensions import db, mail
from models.user import User
from models.forum import ForumPost, ForumReply, PostLike
from models.gallery import GalleryItem
from models.blog import BlogPost, unique_slug, estimate_read_time, make_excerpt
from models.loggers import admin_logger
from models.constants import UPLOAD_MAX_MB, AVATAR_MAX_MB
from models import storage

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "An unexpected error occurred. Please try again."
NOT_AUTHENTICATED = "User not authenticated"
EMAIL_NOT_CONFIRMED = "Please check your email and click the confirmation link to activate your account."
VERIFY_SALT = 'email-verify'


def _is_authenticated(user):
    return user is not None and getattr(user, 'is_authenticated', False)


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _get(model, ident):
    ident = _to_int(ident)
    return db.session.get(model, ident) if ident else None


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'])


# --- Counter procedures ---
# Single UPDATE statements so concurrent requests never lose a count.
# The caller owns the transaction.

def increment_post_likes(post_id):
    ForumPost.query.filter_by(id=post_id).update(
        {ForumPost.likes: ForumPost.likes + 1}, synchronize_session=False
    )


def decrement_post_likes(post_id):
    ForumPost.query.filter_by(id=post_id).update(
        {ForumPost.likes: case((ForumPost.likes > 0, ForumPost.likes - 1), else_=0)},
        synchronize_session=False
    )


def increment_post_views(post_id):
    """Count one view. Failures are logged and otherwise ignored."""
    try:
        ForumPost.query.filter_by(id=post_id).update(
            {ForumPost.views: ForumPost.views + 1}, synchronize_session=False
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Error incrementing views for post %s", post_id)


# --- Authentication ---

def sign_in(email, password, remember=False, ip_address=None):
    if not email or not password:
        return {'error': "Email and password are required"}
    try:
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user or not user.check_password(password):
            return {'error': "Invalid login credentials"}
        if not user.email_verified:
            return {'error': EMAIL_NOT_CONFIRMED}
        login_user(user, remember=remember)
        user.last_known_ip = ip_address
        db.session.commit()
        return {'success': True}
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Login error")
        return {'error': UNEXPECTED_ERROR}


def send_verification_email(email, token):
    verify_url = url_for('verify_email', token=token, _external=True)
    msg = Message('Confirm your account', recipients=[email])
    msg.body = f'Click to confirm your email and activate your account: {verify_url}'
    mail.send(msg)


def sign_up(email, password, first_name="", last_name="", phone_number=""):
    email = (email or "").strip().lower()
    if not email or not password:
        return {'error': "Email and password are required"}
    confirm = current_app.config.get('EMAIL_CONFIRMATION_REQUIRED', True)
    try:
        if User.query.filter_by(email=email).first():
            return {'error': "User already registered"}
        user = User(
            email=email,
            first_name=(first_name or "").strip(),
            last_name=(last_name or "").strip(),
            phone_number=(phone_number or "").strip(),
        )
        user.set_password(password)
        token = None
        if confirm:
            token = _serializer().dumps(email, salt=VERIFY_SALT)
            user.email_verification_token = token
        else:
            user.email_verified = True
        db.session.add(user)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Sign up error")
        return {'error': UNEXPECTED_ERROR}

    if not confirm:
        return {'success': "Account created successfully! You can now sign in."}
    try:
        send_verification_email(email, token)
    except (smtplib.SMTPException, OSError):
        logger.exception("Could not send confirmation email to %s", email)
        return {'error': "Account created, but the confirmation email could not be sent. Please try again later."}
    return {
        'success': "Account created! Please check your email and click the confirmation link to complete registration."
    }


def verify_email(token):
    max_age = current_app.config.get('EMAIL_TOKEN_MAX_AGE', 86400)
    try:
        email = _serializer().loads(token, salt=VERIFY_SALT, max_age=max_age)
    except BadSignature:
        return {'error': "Confirmation link is invalid or expired."}
    user = User.query.filter_by(email=email).first()
    if not user:
        return {'error': "User not found"}
    try:
        user.email_verified = True
        user.email_verification_token = None
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Email verification error")
        return {'error': UNEXPECTED_ERROR}
    return {'success': "Email confirmed! You can now sign in."}


def sign_out():
    logout_user()


def ensure_dev_user(email, password):
    """Return the development account, creating it already verified."""
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, first_name="Dev", last_name="User", email_verified=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
    return user


def create_dev_user():
    if not (current_app.debug or current_app.config.get('ENV_NAME') == 'development'):
        return {'error': "This function is only available in development"}
    email = current_app.config['DEV_USER_EMAIL']
    password = current_app.config['DEV_USER_PASSWORD']
    try:
        user = ensure_dev_user(email, password)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Dev user creation error")
        return {'error': "Failed to create dev user"}
    if not user.check_password(password):
        return {'error': "Invalid login credentials"}
    login_user(user)
    return {'success': True}


# --- Profile ---

def update_user_profile(user, first_name="", last_name="", phone_number="", location="", bio="", avatar=None):
    if not _is_authenticated(user):
        return {'error': NOT_AUTHENTICATED}

    avatar_url = user.avatar_url
    if avatar is not None and avatar.filename:
        is_valid, error = storage.validate_image_type(avatar)
        if not is_valid:
            return {'error': error}
        data = storage.read_image(avatar)
        if data is None:
            return {'error': "Uploaded file is not a valid image."}
        is_valid, error = storage.validate_file_size(len(data), UPLOAD_MAX_MB)
        if not is_valid:
            return {'error': error}
        try:
            data = storage.compress_image(data)
        except (OSError, ValueError):
            logger.warning("Avatar could not be decoded for user %s", user.id)
            return {'error': "Uploaded file is not a valid image."}
        if len(data) > AVATAR_MAX_MB * 1024 * 1024:
            return {'error': f"Avatar file is too large. Maximum size is 1MB. "
                             f"Current size: {storage.size_in_mb(len(data)):.2f}MB"}
        try:
            file_path = storage.upload('avatars', user.id, avatar.filename, data)
        except storage.StorageError:
            logger.exception("Avatar upload error")
            return {'error': "Failed to upload avatar. Please try again with a smaller image."}
        avatar_url = storage.public_url(file_path)

    try:
        user.first_name = (first_name or "").strip()
        user.last_name = (last_name or "").strip()
        user.phone_number = (phone_number or "").strip()
        user.location = (location or "").strip()
        user.bio = (bio or "").strip()
        user.avatar_url = avatar_url
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Profile update error")
        return {'error': UNEXPECTED_ERROR}
    return {'success': "Profile updated successfully!"}


# --- Forum ---

def create_forum_post(user, title, content, category):
    if not _is_authenticated(user):
        return {'error': NOT_AUTHENTICATED}
    title, content, category = (title or "").strip(), (content or "").strip(), (category or "").strip()
    if not title or not content or not category:
        return {'error': "Title, content, and category are required"}
    try:
        post = ForumPost(
            title=title,
            content=content,
            category=category,
            author_id=user.id,
            author_name=user.display_name,
            author_email=user.email or "",
        )
        db.session.add(post)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Forum post creation error")
        return {'error': "Failed to create forum post. Please try again."}
    return {'success': "Forum post created successfully!", 'post_id': post.id}


def toggle_post_like(user, post_id):
    """Like the post if the user has not yet, otherwise take the like back."""
    if not _is_authenticated(user):
        return {'error': NOT_AUTHENTICATED}
    try:
        post = _get(ForumPost, post_id)
        if post is None:
            return {'error': "Post not found"}
        existing = PostLike.query.filter_by(post_id=post.id, user_id=user.id).first()
        if existing:
            db.session.delete(existing)
            decrement_post_likes(post.id)
            liked = False
        else:
            db.session.add(PostLike(post=post, user_id=user.id))
            increment_post_likes(post.id)
            liked = True
        db.session.commit()
        return {'success': True, 'liked': liked, 'likes': post.likes}
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Error toggling like on post %s", post_id)
        return {'error': "Failed to update like"}


def _insert_reply(user, post_id, content, parent_id, failure_message, success_message):
    try:
        post = _get(ForumPost, post_id)
        if post is None:
            return {'error': "Post not found"}
        parent = None
        if parent_id:
            parent = _get(ForumReply, parent_id)
            if parent is None or parent.post_id != post.id:
                return {'error': "Parent comment not found"}
        reply = ForumReply(
            post=post,
            parent=parent,
            content=content,
            author_id=user.id,
            author_name=user.display_name,
            author_email=user.email or "",
        )
        db.session.add(reply)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Reply creation error on post %s", post_id)
        return {'error': failure_message}
    return {'success': success_message}


def add_post_comment(user, post_id, content, parent_id=None):
    if not _is_authenticated(user):
        return {'error': NOT_AUTHENTICATED}
    content = (content or "").strip()
    if not post_id or not content:
        return {'error': "Post ID and content are required"}
    return _insert_reply(user, post_id, content, parent_id or None,
                         "Failed to add comment. Please try again.", "Comment added successfully!")


def add_comment_reply(user, post_id, content, parent_id):
    if not _is_authenticated(user):
        return {'error': NOT_AUTHENTICATED}
    content = (content or "").strip()
    if not post_id or not content or not parent_id:
        return {'error': "Post ID, content, and parent comment ID are required"}
    return _insert_reply(user, post_id, content, parent_id,
                         "Failed to add reply. Please try again.", "Reply added successfully!")


def delete_forum_post(user, post_id):
    if not _is_authenticated(user):
        return {'error': NOT_AUTHENTICATED}
    post = _get(ForumPost, post_id)
    if post is None:
        return {'error': "Post not found"}
    if post.author_id != user.id:
        return {'error': "You can only delete your own posts"}

    steps = [
        ("Failed to delete post replies",
         lambda: ForumReply.query.filter_by(post_id=post.id).delete(synchronize_session=False)),
        ("Failed to delete post likes",
         lambda: PostLike.query.filter_by(post_id=post.id).delete(synchronize_session=False)),
        ("Failed to delete post", lambda: db.session.delete(post)),
    ]
    for message, step in steps:
        try:
            step()
            db.session.flush()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("%s %s", message, post_id)
            return {'error': message}
    db.session.commit()
    return {'success': "Post deleted successfully"}


def delete_comment_reply(user, comment_id):
    if not _is_authenticated(user):
        return {'error': NOT_AUTHENTICATED}
    comment = _get(ForumReply, comment_id)
    if comment is None:
        return {'error': "Comment not found"}
    if comment.author_id != user.id:
        return {'error': "You can only delete your own comments"}
    try:
        # child replies cascade through ForumReply.children
        db.session.delete(comment)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Error deleting comment %s", comment_id)
        return {'error': "Failed to delete comment"}
    return {'success': "Comment deleted successfully"}


# --- Moderation ---

def _delete_user_replies(target):
    for reply in ForumReply.query.filter_by(author_id=target.id).all():
        db.session.delete(reply)


def _delete_user_posts(target):
    for post in ForumPost.query.filter_by(author_id=target.id).all():
        db.session.delete(post)


def _delete_user_likes(target):
    for like in PostLike.query.filter_by(user_id=target.id).all():
        decrement_post_likes(like.post_id)
        db.session.delete(like)


def _delete_user_gallery(target):
    for item in GalleryItem.query.filter_by(uploaded_by=target.id).all():
        db.session.delete(item)


def ban_user(admin, user_id):
    """Delete a member's account together with everything they posted."""
    if not _is_authenticated(admin):
        return {'error': NOT_AUTHENTICATED}
    if not admin.is_admin:
        return {'error': "Only administrators can ban users"}
    target = _get(User, user_id)
    if target is None:
        return {'error': "User not found"}
    if target.is_admin:
        return {'error': "Cannot ban administrator account"}

    target_email = target.email
    image_paths = [
        item.image_path for item in GalleryItem.query.filter_by(uploaded_by=target.id).all() if item.image_path
    ]
    steps = [
        ("Failed to delete user replies", _delete_user_replies),
        ("Failed to delete user posts", _delete_user_posts),
        ("Failed to delete user likes", _delete_user_likes),
        ("Failed to delete user gallery items", _delete_user_gallery),
        ("Failed to delete user account", db.session.delete),
    ]
    for message, step in steps:
        try:
            step(target)
            db.session.flush()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("%s (user %s)", message, user_id)
            return {'error': message}
    db.session.commit()

    for path in image_paths:
        try:
            storage.remove(path)
        except OSError:
            logger.warning("Could not remove gallery file %s of banned user %s", path, target_email)
    admin_logger.info(f"Admin {admin.email} banned user {target_email} (ID {user_id})")
    return {'success': "User banned successfully"}


def toggle_post_pin(admin, post_id):
    if not _is_authenticated(admin):
        return {'error': NOT_AUTHENTICATED}
    if not admin.is_admin:
        return {'error': "Only administrators can pin posts"}
    post = _get(ForumPost, post_id)
    if post is None:
        return {'error': "Post not found"}
    try:
        post.is_pinned = not post.is_pinned
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Error pinning post %s", post_id)
        return {'error': UNEXPECTED_ERROR}
    state = "pinned" if post.is_pinned else "unpinned"
    admin_logger.info(f"Admin {admin.email} {state} forum post '{post.title}' (ID {post.id})")
    return {'success': f"Post {state}"}


# --- Gallery ---

def upload_gallery_item(user, title, category, description, image):
    if not _is_authenticated(user):
        return {'error': NOT_AUTHENTICATED}
    title, category = (title or "").strip(), (category or "").strip()
    if not title or not category or image is None or not image.filename:
        return {'error': "Title, category, and image are required"}
    is_valid, error = storage.validate_image_type(image)
    if not is_valid:
        return {'error': error}
    data = storage.read_image(image)
    if data is None:
        return {'error': "Uploaded file is not a valid image."}
    is_valid, error = storage.validate_file_size(len(data), UPLOAD_MAX_MB)
    if not is_valid:
        return {'error': error}
    try:
        file_path = storage.upload('gallery', user.id, image.filename, data)
    except storage.StorageError:
        logger.exception("Gallery upload error")
        return {'error': "Failed to upload image. Please try again."}
    try:
        item = GalleryItem(
            title=title,
            category=category,
            description=(description or "").strip(),
            image_url=storage.public_url(file_path),
            image_path=file_path,
            uploaded_by=user.id,
        )
        db.session.add(item)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Gallery item creation error")
        storage.remove(file_path)
        return {'error': UNEXPECTED_ERROR}
    return {'success': "Photo uploaded successfully!"}


# --- Blog ---

def create_blog_post(admin, title, category, content, excerpt="", image_url=None, featured=False):
    if not _is_authenticated(admin):
        return {'error': NOT_AUTHENTICATED}
    if not admin.is_admin:
        return {'error': "Only administrators can publish blog posts"}
    title, content = (title or "").strip(), (content or "").strip()
    if not title or not content or not category:
        return {'error': "Title, content, and category are required"}
    try:
        post = BlogPost(
            title=title,
            slug=unique_slug(title),
            excerpt=(excerpt or "").strip() or make_excerpt(content),
            content=content,
            category=category,
            author_id=admin.id,
            image_url=image_url or None,
            read_time=estimate_read_time(content),
            featured=bool(featured),
        )
        db.session.add(post)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Blog post creation error")
        return {'error': "Failed to publish blog post. Please try again."}
    admin_logger.info(f"Admin {admin.email} published blog post '{post.title}' ({post.slug})")
    return {'success': "Blog post published!", 'slug': post.slug}


def increment_blog_views(post_id):
    try:
        BlogPost.query.filter_by(id=post_id).update(
            {BlogPost.views: BlogPost.views + 1}, synchronize_session=False
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Error incrementing views for blog post %s", post_id)
