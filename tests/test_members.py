from datetime import datetime, timedelta

from tests.conftest import login


def test_member_directory_lists_and_searches(auth_client, create_user):
    create_user(email='bilal@communityhub.org', first_name='Bilal', last_name='Rahman',
                location='Cardiff', phone_number='5551234567')
    response = auth_client.get('/dashboard/members')
    assert b"Amina Yusuf" in response.data
    assert b"Bilal Rahman" in response.data
    assert b"(555) 123-4567" in response.data
    assert b"Joined today" in response.data

    response = auth_client.get('/dashboard/members?q=cardiff')
    assert b"Bilal Rahman" in response.data
    assert b"Amina Yusuf" not in response.data


def test_regular_members_see_no_ban_buttons(auth_client, create_user):
    create_user(email='bilal@communityhub.org')
    response = auth_client.get('/dashboard/members')
    assert b"Ban User" not in response.data


def test_admin_sees_ban_buttons_except_for_admins(client, admin_id, user_id):
    login(client, admin_id)
    response = client.get('/dashboard/members')
    assert response.data.count(b"Ban User") == 1
    assert f'/admin/users/{user_id}/ban'.encode() in response.data
    assert f'/admin/users/{admin_id}/ban'.encode() not in response.data


def test_profile_bio_is_escaped_on_cards(auth_client, create_user):
    create_user(email='bilal@communityhub.org', bio='<script>alert(1)</script>')
    response = auth_client.get('/dashboard/members')
    assert b"<script>alert(1)</script>" not in response.data
    assert b"&lt;script&gt;" in response.data


def test_member_stats(app, auth_client, create_user):
    create_user(email='bilal@communityhub.org', phone_number='5551234567', location='Cardiff')
    create_user(email='sara@communityhub.org', location='Leeds')
    create_user(email='omar@communityhub.org', phone_number='  ',
                created_at=datetime.utcnow() - timedelta(days=30))
    page = auth_client.get('/dashboard/members').data.decode()
    assert "<span>4</span> Total Members" in page
    assert "<span>1</span> With Phone Numbers" in page
    assert "<span>2</span> With Locations" in page
    assert "<span>3</span> Joined This Week" in page
