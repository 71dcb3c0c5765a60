import pytest

from extensions import db
from models import actions
from models.forum import ForumPost, ForumReply, PostLike
from models.gallery import GalleryItem
from models.loggers import tail_admin_log
from models.user import User
from tests.conftest import fail_on_call


def _seed_content(app, target_id, other_post_id):
    with app.app_context():
        db.session.add(PostLike(post_id=other_post_id, user_id=target_id))
        db.session.add(GalleryItem(title='Picnic', category='Events', image_url='/uploads/gallery/x.png',
                                   uploaded_by=target_id))
        db.session.commit()


def test_ban_removes_user_and_content(app, admin_client, admin_id, create_user, create_post, create_reply):
    target = create_user(email='spammer@communityhub.org', first_name='Spam', last_name='Bot')
    bystander = create_user(email='kind@communityhub.org')
    target_post = create_post(target, title='Buy cheap watches')
    other_post = create_post(bystander, title='Neighbourhood cleanup', likes=1)
    create_reply(target_post, bystander, content='reply on spam post')
    create_reply(other_post, target, content='spam reply')
    _seed_content(app, target, other_post)

    response = admin_client.post(f'/admin/users/{target}/ban', follow_redirects=True)
    assert b"User banned successfully" in response.data
    with app.app_context():
        assert db.session.get(User, target) is None
        assert ForumPost.query.filter_by(author_id=target).count() == 0
        assert ForumReply.query.filter_by(author_id=target).count() == 0
        assert ForumReply.query.count() == 0
        assert PostLike.query.count() == 0
        assert GalleryItem.query.count() == 0
        assert db.session.get(ForumPost, other_post).likes == 0
        assert db.session.get(User, bystander) is not None
    assert any('banned user spammer@communityhub.org' in line for line in tail_admin_log(app.config['ADMIN_LOG_PATH']))


def test_admin_cannot_be_banned(app, admin_client, create_user):
    other_admin = create_user(email='mod@communityhub.org', is_admin=True)
    response = admin_client.post(f'/admin/users/{other_admin}/ban', follow_redirects=True)
    assert b"Cannot ban administrator account" in response.data
    with app.app_context():
        assert db.session.get(User, other_admin) is not None


def test_ban_action_checks(app, admin_id, user_id):
    with app.test_request_context():
        admin = db.session.get(User, admin_id)
        member = db.session.get(User, user_id)
        assert actions.ban_user(member, admin_id) == {'error': "Only administrators can ban users"}
        assert actions.ban_user(admin, 9999) == {'error': "User not found"}
        assert actions.ban_user(admin, admin_id) == {'error': "Cannot ban administrator account"}
        assert actions.ban_user(None, user_id) == {'error': "User not authenticated"}


def test_non_admin_is_kept_out(auth_client):
    response = auth_client.get('/admin/', follow_redirects=True)
    assert b"Admin access required." in response.data
    response = auth_client.post('/admin/users/1/ban')
    assert response.status_code == 302


def test_admin_dashboard_and_users(admin_client, user_id):
    response = admin_client.get('/admin/')
    assert response.status_code == 200
    assert b"Admin Dashboard" in response.data
    response = admin_client.get('/admin/users')
    assert b"amina@communityhub.org" in response.data


def test_pin_toggle(app, admin_client, user_id, create_post):
    older = create_post(user_id, title='Older pinned announcement')
    newer = create_post(user_id, title='Newest chatter')
    response = admin_client.post(f'/admin/posts/{older}/pin', follow_redirects=True)
    assert b"Post pinned" in response.data
    with app.app_context():
        assert db.session.get(ForumPost, older).is_pinned
        assert not db.session.get(ForumPost, newer).is_pinned

    page = admin_client.get('/dashboard/forums').data
    assert page.index(b"Older pinned announcement") < page.index(b"Newest chatter")

    response = admin_client.post(f'/admin/posts/{older}/pin', follow_redirects=True)
    assert b"Post unpinned" in response.data


def test_admin_publishes_blog_post(app, admin_client):
    response = admin_client.post('/admin/blog/new', data={
        'title': 'Ramadan Food Drive Recap',
        'category': 'Community Events',
        'excerpt': '',
        'content': 'word ' * 401,
        'image_url': '',
    }, follow_redirects=True)
    assert b"Blog post published!" in response.data
    assert b"Ramadan Food Drive Recap" in response.data
    assert b"3 min read" in response.data
    with app.app_context():
        from models.blog import BlogPost
        post = BlogPost.query.one()
        assert post.slug == 'ramadan-food-drive-recap'
        assert post.excerpt.endswith('...')
        assert post.author_name == 'Site Admin'
        assert post.views == 1


def test_make_admin_command(app, user_id):
    result = app.test_cli_runner().invoke(args=['make-admin', 'amina@communityhub.org'])
    assert 'is now an administrator' in result.output
    with app.app_context():
        assert db.session.get(User, user_id).is_admin


@pytest.mark.parametrize('failing_step, message', [
    (1, "Failed to delete user replies"),
    (2, "Failed to delete user posts"),
    (3, "Failed to delete user likes"),
    (4, "Failed to delete user gallery items"),
    (5, "Failed to delete user account"),
])
def test_ban_failure_rolls_back_every_step(app, admin_id, create_user, create_post, create_reply,
                                           monkeypatch, failing_step, message):
    target = create_user(email='flooder@communityhub.org', first_name='Spam', last_name='Bot')
    bystander = create_user(email='kind@communityhub.org')
    target_post = create_post(target, title='Buy cheap watches')
    other_post = create_post(bystander, title='Neighbourhood cleanup', likes=1)
    create_reply(other_post, target, content='spam reply')
    _seed_content(app, target, other_post)

    with app.test_request_context():
        monkeypatch.setattr(db.session, 'flush', fail_on_call(db.session.flush, failing_step))
        result = actions.ban_user(db.session.get(User, admin_id), target)
        assert result == {'error': message}
    monkeypatch.undo()
    with app.app_context():
        assert db.session.get(User, target) is not None
        assert db.session.get(ForumPost, target_post) is not None
        assert ForumReply.query.filter_by(author_id=target).count() == 1
        assert PostLike.query.filter_by(user_id=target).count() == 1
        assert GalleryItem.query.filter_by(uploaded_by=target).count() == 1
        assert db.session.get(ForumPost, other_post).likes == 1
    assert not any('banned user flooder@communityhub.org' in line
                   for line in tail_admin_log(app.config['ADMIN_LOG_PATH']))
