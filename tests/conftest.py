import io
import os
import tempfile

import pytest
from PIL import Image
from sqlalchemy.exc import SQLAlchemyError

_tmp = tempfile.mkdtemp(prefix='community-tests-')
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['UPLOAD_FOLDER'] = os.path.join(_tmp, 'uploads')
os.environ['ADMIN_LOG_PATH'] = os.path.join(_tmp, 'admin_actions.log')
os.environ['FLASK_SECRET_KEY'] = 'test-secret-key'
os.environ['FLASK_TESTING'] = 'true'
os.environ['FLASK_WTF_CSRF_ENABLED'] = 'false'
os.environ['FLASK_RATELIMIT_ENABLED'] = 'false'
os.environ['FLASK_MAIL_SUPPRESS_SEND'] = 'true'

from app import app as flask_app  # noqa: E402
from extensions import db  # noqa: E402
from models.user import User  # noqa: E402
from models.forum import ForumPost, ForumReply  # noqa: E402


@pytest.fixture
def app(tmp_path):
    flask_app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    flask_app.config['EMAIL_CONFIRMATION_REQUIRED'] = True
    flask_app.config['ENV_NAME'] = 'production'
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def create_user(app):
    def _create(email='amina@communityhub.org', password='password123', first_name='Amina',
                last_name='Yusuf', is_admin=False, verified=True, **extra):
        with app.app_context():
            user = User(email=email, first_name=first_name, last_name=last_name,
                        is_admin=is_admin, email_verified=verified, **extra)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _create


@pytest.fixture
def user_id(create_user):
    return create_user()


@pytest.fixture
def admin_id(create_user):
    return create_user(email='admin@communityhub.org', first_name='Site', last_name='Admin', is_admin=True)


@pytest.fixture
def create_post(app):
    def _create(author_id, title='Clean water drive', content='Join us this Saturday.',
                category='community', **extra):
        with app.app_context():
            author = db.session.get(User, author_id)
            post = ForumPost(title=title, content=content, category=category, author_id=author_id,
                             author_name=author.display_name, author_email=author.email, **extra)
            db.session.add(post)
            db.session.commit()
            return post.id
    return _create


@pytest.fixture
def create_reply(app):
    def _create(post_id, author_id, content='Count me in!', parent_id=None):
        with app.app_context():
            author = db.session.get(User, author_id)
            reply = ForumReply(post_id=post_id, parent_id=parent_id, content=content, author_id=author_id,
                               author_name=author.display_name, author_email=author.email)
            db.session.add(reply)
            db.session.commit()
            return reply.id
    return _create


def login(client, user_id):
    with client.session_transaction() as sess:
        sess['_user_id'] = str(user_id)
        sess['_fresh'] = True


@pytest.fixture
def auth_client(client, user_id):
    login(client, user_id)
    return client


@pytest.fixture
def admin_client(app, admin_id):
    client = app.test_client()
    login(client, admin_id)
    return client


def make_image(fmt='PNG', size=(800, 600), color=(200, 30, 30)):
    buf = io.BytesIO()
    Image.new('RGB', size, color).save(buf, format=fmt)
    buf.seek(0)
    return buf


def fail_on_call(method, call_number=1):
    """Wrap a session method so that its Nth call raises SQLAlchemyError."""
    calls = []

    def wrapper(*args, **kwargs):
        calls.append(1)
        if len(calls) == call_number:
            raise SQLAlchemyError("database unavailable")
        return method(*args, **kwargs)
    return wrapper
