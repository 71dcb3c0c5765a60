from flask import Blueprint, render_template, redirect, url_for, flash, request, current_app
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError
from models.user import User
from models.forum import ForumPost, ForumReply, category_label
from models.blog import BlogPost
from models.gallery import GalleryItem
from extensions import limiter
from models.loggers import tail_admin_log
from models.forms import BanForm, PinForm, BlogPostForm
from models.utils import admin_required, is_safe_url, first_error
from models import actions

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


def _back(default):
    target = request.form.get('next') or request.referrer
    if target and is_safe_url(target):
        return redirect(target)
    return redirect(default)


# --- Admin Dashboard ---

@admin_bp.route('/')
@limiter.limit("20 per minute")
@admin_required
def admin_dashboard():
    try:
        counts = {
            'users': User.query.count(),
            'posts': ForumPost.query.count(),
            'replies': ForumReply.query.count(),
            'blog_posts': BlogPost.query.count(),
            'gallery_items': GalleryItem.query.count(),
        }
    except SQLAlchemyError:
        current_app.logger.exception("Error loading admin counts")
        counts = dict.fromkeys(('users', 'posts', 'replies', 'blog_posts', 'gallery_items'), 0)
    log_lines = tail_admin_log(current_app.config['ADMIN_LOG_PATH'])
    return render_template('admin/dashboard.html', counts=counts, admin_logs=log_lines)


# --- Admin Users ---

@admin_bp.route('/users')
@limiter.limit("20 per minute")
@admin_required
def admin_users():
    users = User.query.order_by(User.id.desc()).all()
    ban_forms = {u.id: BanForm(prefix=f"ban-{u.id}") for u in users if not u.is_admin}
    return render_template('admin/users.html', users=users, ban_forms=ban_forms)


@admin_bp.route('/users/<int:user_id>/ban', methods=['POST'])
@limiter.limit("20 per minute")
@admin_required
def admin_ban_user(user_id):
    result = actions.ban_user(current_user, user_id)
    if result.get('error'):
        flash(result['error'], "danger")
    else:
        flash(result['success'], "success")
    return _back(url_for('admin.admin_users'))


# --- Admin Forum Posts ---

@admin_bp.route('/posts')
@limiter.limit("20 per minute")
@admin_required
def admin_posts():
    posts = ForumPost.query.order_by(ForumPost.is_pinned.desc(), ForumPost.created_at.desc()).all()
    pin_forms = {post.id: PinForm(prefix=f"pin-{post.id}") for post in posts}
    return render_template('admin/posts.html', posts=posts, pin_forms=pin_forms, category_label=category_label)


@admin_bp.route('/posts/<int:post_id>/pin', methods=['POST'])
@limiter.limit("20 per minute")
@admin_required
def admin_toggle_pin(post_id):
    result = actions.toggle_post_pin(current_user, post_id)
    if result.get('error'):
        flash(result['error'], "danger")
    else:
        flash(result['success'], "success")
    return _back(url_for('admin.admin_posts'))


# --- Admin Blog ---

@admin_bp.route('/blog/new', methods=['GET', 'POST'])
@limiter.limit("20 per minute")
@admin_required
def admin_new_blog_post():
    form = BlogPostForm()
    if form.validate_on_submit():
        result = actions.create_blog_post(
            current_user,
            title=form.title.data,
            category=form.category.data,
            content=form.content.data,
            excerpt=form.excerpt.data,
            image_url=form.image_url.data,
            featured=form.featured.data,
        )
        if result.get('error'):
            flash(result['error'], "danger")
        else:
            flash(result['success'], "success")
            return redirect(url_for('blog_detail', slug=result['slug']))
    elif form.errors:
        flash(first_error(form), "danger")
    return render_template('admin/blog_form.html', form=form)
