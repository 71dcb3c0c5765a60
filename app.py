# -*- coding: utf-8 -*-
from flask import Flask, render_template, redirect, url_for, request, flash, jsonify, session, send_from_directory
from flask_login import login_required, current_user
from datetime import datetime, timedelta
from sqlalchemy.exc import SQLAlchemyError
import click
import logging
import os
from extensions import db, login_manager, mail, migrate, csrf, limiter

app = Flask(__name__)

app.config['MAIL_SERVER'] = os.environ.get('MAIL_SERVER', 'localhost')
app.config['MAIL_PORT'] = int(os.environ.get('MAIL_PORT', 1025))
app.config['MAIL_USE_TLS'] = os.environ.get('MAIL_USE_TLS', 'false').lower() == 'true'
app.config['MAIL_USE_SSL'] = False
app.config['MAIL_USERNAME'] = os.environ.get('MAIL_USERNAME')
app.config['MAIL_PASSWORD'] = os.environ.get('MAIL_PASSWORD')
app.config['MAIL_DEFAULT_SENDER'] = os.environ.get('MAIL_DEFAULT_SENDER', 'noreply@example.com')
app.config['SECRET_KEY'] = os.environ.get('FLASK_SECRET_KEY', os.urandom(32))
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///community.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['UPLOAD_FOLDER'] = os.environ.get('UPLOAD_FOLDER', os.path.join(app.root_path, 'static', 'uploads'))
app.config['MAX_CONTENT_LENGTH'] = 10 * 1024 * 1024  # 10MB request body
app.config['LOGIN_MESSAGE'] = None
app.config['LOGIN_MESSAGE_CATEGORY'] = "info"
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(minutes=int(os.environ.get('SESSION_LIFETIME_MINUTES', 30)))
app.config['RATELIMIT_STORAGE_URI'] = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
app.config['EMAIL_CONFIRMATION_REQUIRED'] = os.environ.get('EMAIL_CONFIRMATION_REQUIRED', 'true').lower() == 'true'
app.config['ENV_NAME'] = os.environ.get('APP_ENV', 'production')
app.config['DEV_USER_EMAIL'] = os.environ.get('DEV_USER_EMAIL', 'dev@example.com')
app.config['DEV_USER_PASSWORD'] = os.environ.get('DEV_USER_PASSWORD', 'devpassword123')
app.config['ADMIN_LOG_PATH'] = os.environ.get('ADMIN_LOG_PATH', 'admin_actions.log')
# FLASK_* variables win over everything above
app.config.from_prefixed_env()

db.init_app(app)
login_manager.init_app(app)
login_manager.login_view = 'login'
mail.init_app(app)
migrate.init_app(app, db)
csrf.init_app(app)
limiter.init_app(app)


from models.user import User
from models.forum import (
    ForumPost, ForumReply, load_forum_feed, load_post_detail, category_counts, filter_posts, serialize_post
)
from models.blog import BlogPost
from models.gallery import GalleryItem
from models.admin import admin_bp
from models.forms import (
    LoginForm, SignUpForm, ProfileForm, ForumPostForm, CommentForm, GalleryUploadForm, DeleteForm, BanForm
)
from models.constants import GALLERY_CATEGORIES, BLOG_CATEGORIES, RECENT_ACTIVITY_LIMIT
from models.loggers import init_admin_log
from models.utils import (
    is_safe_url, wants_json, first_error, render_text, relative_time, format_join_date, format_phone_number,
    long_date, filter_members
)
from models import actions

app.register_blueprint(admin_bp)
logging.getLogger('flask_limiter').setLevel(logging.ERROR)
init_admin_log(app.config['ADMIN_LOG_PATH'])
with app.app_context():
    db.create_all()


# Middleware -------------------------------

@app.before_request
def update_last_seen():
    if current_user.is_authenticated:
        now = datetime.utcnow()
        if not current_user.last_seen or (now - current_user.last_seen).total_seconds() > 60:
            current_user.last_seen = now
            db.session.commit()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    if wants_json():
        return jsonify({'error': actions.NOT_AUTHENTICATED}), 401
    return redirect(url_for('login', next=request.full_path))


def flash_result(result, success_category="success"):
    if result.get('error'):
        flash(result['error'], "danger")
        return False
    if isinstance(result.get('success'), str):
        flash(result['success'], success_category)
    return True


def redirect_next(default):
    next_page = request.args.get('next')
    if next_page and is_safe_url(next_page):
        return redirect(next_page)
    return redirect(default)


# Routes -------------------------------

@app.route('/')
def home():
    if current_user.is_authenticated:
        return redirect(url_for('dashboard'))
    return redirect(url_for('login'))


@app.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(app.config['UPLOAD_FOLDER'], filename)


# Auth -------------------------------

@app.route('/auth/login', methods=['GET', 'POST'])
@limiter.limit("20 per minute")
def login():
    if current_user.is_authenticated:
        return redirect(url_for('dashboard'))
    form = LoginForm()
    if form.validate_on_submit():
        result = actions.sign_in(form.email.data, form.password.data, ip_address=request.remote_addr)
        if result.get('error'):
            flash(result['error'], "danger")
        else:
            session.permanent = True
            return redirect_next(url_for('dashboard'))
    elif form.errors:
        flash(first_error(form), "danger")
    return render_template('auth/login.html', form=form, dev_login=app.debug or app.config['ENV_NAME'] == 'development')


@app.route('/auth/signup', methods=['GET', 'POST'])
@limiter.limit("5 per minute")
def signup():
    if current_user.is_authenticated:
        return redirect(url_for('dashboard'))
    form = SignUpForm()
    if form.validate_on_submit():
        result = actions.sign_up(
            form.email.data,
            form.password.data,
            first_name=form.first_name.data,
            last_name=form.last_name.data,
            phone_number=form.phone_number.data,
        )
        if flash_result(result):
            return redirect(url_for('login'))
    elif form.errors:
        flash(first_error(form), "danger")
    return render_template('auth/signup.html', form=form)


@app.route('/auth/verify/<token>')
def verify_email(token):
    flash_result(actions.verify_email(token))
    return redirect(url_for('login'))


@app.route('/auth/dev-login', methods=['POST'])
def dev_login():
    result = actions.create_dev_user()
    if result.get('error'):
        flash(result['error'], "danger")
        return redirect(url_for('login'))
    return redirect(url_for('dashboard'))


@app.route('/auth/logout')
@login_required
def logout():
    actions.sign_out()
    return redirect(url_for('login'))


@app.route('/privacy')
def privacy():
    return render_template('privacy.html')


@app.route('/terms')
def terms():
    return render_template('terms.html')


# Dashboard -------------------------------

@app.route('/dashboard')
@login_required
def dashboard():
    try:
        stats = {
            'members': User.query.count(),
            'posts': ForumPost.query.count(),
            'replies': ForumReply.query.count(),
            'blog_posts': BlogPost.query.count(),
        }
        recent_posts = ForumPost.query.order_by(ForumPost.created_at.desc(), ForumPost.id.desc()) \
            .limit(RECENT_ACTIVITY_LIMIT).all()
        recent_replies = ForumReply.query.order_by(ForumReply.created_at.desc(), ForumReply.id.desc()) \
            .limit(RECENT_ACTIVITY_LIMIT).all()
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception("Error loading dashboard stats")
        stats = dict.fromkeys(('members', 'posts', 'replies', 'blog_posts'), 0)
        recent_posts, recent_replies = [], []
    return render_template(
        'dashboard.html',
        greeting_name=current_user.greeting_name,
        today=long_date(datetime.utcnow()),
        stats=stats,
        recent_posts=[serialize_post(post) for post in recent_posts],
        recent_replies=recent_replies,
    )


# Forums -------------------------------

@app.route('/dashboard/forums')
@login_required
def forums():
    feed = load_forum_feed(current_user)
    category = request.args.get('category', 'all')
    term = request.args.get('q', '')
    posts = filter_posts(feed, category, term)
    # pinned posts float to the top, newest first within each group
    posts.sort(key=lambda post: not post['is_pinned'])
    return render_template(
        'forums/index.html',
        posts=posts,
        categories=category_counts(feed),
        active_category=category,
        search_term=term,
        delete_form=DeleteForm(),
    )


@app.route('/dashboard/forums/new', methods=['GET', 'POST'])
@login_required
def new_forum_post():
    form = ForumPostForm()
    if form.validate_on_submit():
        result = actions.create_forum_post(current_user, form.title.data, form.content.data, form.category.data)
        if flash_result(result):
            return redirect(url_for('forums'))
    elif form.errors:
        flash(first_error(form), "danger")
    return render_template('forums/new.html', form=form)


@app.route('/dashboard/forums/<int:post_id>')
@login_required
def forum_post(post_id):
    post = db.get_or_404(ForumPost, post_id)
    actions.increment_post_views(post.id)
    return render_template(
        'forums/detail.html',
        post=load_post_detail(post, current_user),
        comment_form=CommentForm(),
        delete_form=DeleteForm(),
    )


@app.route('/dashboard/forums/<int:post_id>/like', methods=['POST'])
@login_required
def like_post(post_id):
    result = actions.toggle_post_like(current_user, post_id)
    if wants_json():
        if result.get('error'):
            status = 404 if result['error'] == "Post not found" else 400
            return jsonify({'error': result['error']}), status
        return jsonify({'liked': result['liked'], 'likes': result['likes']})
    if result.get('error'):
        flash(result['error'], "danger")
    return redirect(request.referrer if request.referrer and is_safe_url(request.referrer) else url_for('forums'))


@app.route('/dashboard/forums/<int:post_id>/comments', methods=['POST'])
@login_required
def add_comment(post_id):
    form = CommentForm()
    if form.validate_on_submit():
        if form.parent_id.data:
            result = actions.add_comment_reply(current_user, post_id, form.content.data, form.parent_id.data)
        else:
            result = actions.add_post_comment(current_user, post_id, form.content.data)
        flash_result(result)
    else:
        flash(first_error(form), "danger")
    return redirect(url_for('forum_post', post_id=post_id))


@app.route('/dashboard/forums/<int:post_id>/delete', methods=['POST'])
@login_required
def delete_post(post_id):
    form = DeleteForm()
    if form.validate_on_submit():
        flash_result(actions.delete_forum_post(current_user, post_id))
    return redirect(url_for('forums'))


@app.route('/dashboard/comments/<int:comment_id>/delete', methods=['POST'])
@login_required
def delete_comment(comment_id):
    comment = db.session.get(ForumReply, comment_id)
    post_id = comment.post_id if comment else None
    form = DeleteForm()
    if form.validate_on_submit():
        flash_result(actions.delete_comment_reply(current_user, comment_id))
    if post_id:
        return redirect(url_for('forum_post', post_id=post_id))
    return redirect(url_for('forums'))


# Members & profile -------------------------------

@app.route('/dashboard/members')
@login_required
def members():
    term = request.args.get('q', '')
    users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
    results = filter_members(users, term)
    ban_forms = {}
    if current_user.is_admin:
        ban_forms = {
            u.id: BanForm(prefix=f"ban-{u.id}") for u in results if not u.is_admin and u.id != current_user.id
        }
    week_ago = datetime.utcnow() - timedelta(days=7)
    stats = {
        'total': len(users),
        'with_phone': sum(1 for u in users if (u.phone_number or '').strip()),
        'with_location': sum(1 for u in users if (u.location or '').strip()),
        'joined_this_week': sum(1 for u in users if u.created_at and u.created_at > week_ago),
    }
    return render_template('members.html', members=results, stats=stats, search_term=term, ban_forms=ban_forms)


@app.route('/dashboard/profile', methods=['GET', 'POST'])
@login_required
def profile():
    form = ProfileForm(obj=current_user)
    if form.validate_on_submit():
        result = actions.update_user_profile(
            current_user,
            first_name=form.first_name.data,
            last_name=form.last_name.data,
            phone_number=form.phone_number.data,
            location=form.location.data,
            bio=form.bio.data,
            avatar=form.avatar_file.data,
        )
        if flash_result(result):
            return redirect(url_for('profile'))
    elif form.errors:
        flash(first_error(form), "danger")
    return render_template('profile.html', form=form)


# Gallery -------------------------------

@app.route('/dashboard/gallery')
@login_required
def gallery():
    category = request.args.get('category', 'All')
    term = request.args.get('q', '') or ''
    needle = term.strip().lower()
    query = GalleryItem.query
    if category != 'All':
        query = query.filter_by(category=category)
    items = query.order_by(GalleryItem.created_at.desc(), GalleryItem.id.desc()).all()
    if needle:
        items = [
            item for item in items
            if needle in item.title.lower() or needle in (item.description or '').lower()
        ]
    return render_template(
        'gallery/index.html',
        items=items,
        categories=['All'] + GALLERY_CATEGORIES,
        active_category=category,
        search_term=term,
    )


@app.route('/dashboard/gallery/upload', methods=['GET', 'POST'])
@login_required
def gallery_upload():
    form = GalleryUploadForm()
    if form.validate_on_submit():
        result = actions.upload_gallery_item(
            current_user, form.title.data, form.category.data, form.description.data, form.image.data
        )
        if flash_result(result):
            return redirect(url_for('gallery'))
    elif form.errors:
        flash(first_error(form), "danger")
    return render_template('gallery/upload.html', form=form)


# Blog -------------------------------

@app.route('/dashboard/blog')
@login_required
def blog():
    category = request.args.get('category', 'All')
    term = request.args.get('q', '') or ''
    needle = term.strip().lower()
    posts = BlogPost.query.order_by(BlogPost.published_at.desc(), BlogPost.id.desc()).all()
    if category != 'All':
        posts = [post for post in posts if post.category == category]
    if needle:
        posts = [
            post for post in posts
            if needle in post.title.lower() or needle in (post.excerpt or '').lower() or needle in post.content.lower()
        ]
    featured = next((post for post in posts if post.featured), None)
    others = [post for post in posts if post is not featured]
    return render_template(
        'blog/index.html',
        featured=featured,
        posts=others,
        categories=['All'] + BLOG_CATEGORIES,
        active_category=category,
        search_term=term,
    )


@app.route('/dashboard/blog/<slug>')
@login_required
def blog_detail(slug):
    post = BlogPost.query.filter_by(slug=slug).first_or_404()
    actions.increment_blog_views(post.id)
    return render_template('blog/detail.html', post=post)


# Template helpers -------------------------------

@app.context_processor
def inject_user():
    return dict(user=current_user)


@app.context_processor
def inject_now():
    return {'now': datetime.utcnow}


app.add_template_filter(render_text, 'rich_text')
app.add_template_filter(relative_time, 'relative_time')
app.add_template_filter(format_join_date, 'join_date')
app.add_template_filter(format_phone_number, 'phone')


# CLI -------------------------------

@app.cli.command("init-db")
def init_db():
    db.create_all()
    print("Database tables created.")


@app.cli.command("make-admin")
@click.argument("email")
def make_admin(email):
    """Grant administrator rights to an existing account."""
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        print(f"No user with email {email}.")
        return
    user.is_admin = True
    db.session.commit()
    print(f"{user.email} is now an administrator.")


@app.cli.command("create-dev-user")
def create_dev_user_command():
    user = actions.ensure_dev_user(app.config['DEV_USER_EMAIL'], app.config['DEV_USER_PASSWORD'])
    print(f"Development user ready: {user.email}")


# Errors -------------------------------

@app.errorhandler(404)
def not_found_error(error):
    return render_template('error/404.html'), 404


@app.errorhandler(500)
def internal_error(error):
    db.session.rollback()
    return render_template('error/500.html'), 500


@app.errorhandler(403)
def forbidden_error(error):
    return render_template('error/403.html'), 403


@app.errorhandler(401)
def unauthorized_error(error):
    return render_template('error/401.html'), 401


@app.errorhandler(413)
def too_large_error(error):
    flash("File is too large.", "danger")
    return redirect(request.referrer or url_for('dashboard'))


@app.errorhandler(429)
def ratelimit_handler(e):
    flash("Too many requests, please slow down!", "warning")
    return redirect(request.referrer or url_for('dashboard'))


if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    app.run(debug=True)
