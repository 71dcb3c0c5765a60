import math
import re
from datetime import datetime
from functools import wraps
from urllib.parse import urlparse, urljoin
from flask import request, flash, redirect, url_for
from flask_login import current_user
from markupsafe import escape, Markup


def urlize(text, nofollow=True, target='_blank'):
    def repl(match):
        url = match.group(0)
        attrs = []
        if nofollow:
            attrs.append('rel="nofollow"')
        if target:
            attrs.append(f'target="{target}"')
        attr_str = ' '.join(attrs)
        return f'<a href="{url}" {attr_str}>{url}</a>'
    return re.sub(r'(https?://[^\s<]+)', repl, text)


def render_text(text, empty="No bio set yet."):
    """Escape user text, link bare URLs and keep line breaks."""
    if not text:
        return empty
    lines = escape(text).split('\n')
    lines = [Markup(urlize(line, nofollow=True, target='_blank')) for line in lines]
    return Markup('<br>').join(lines)


def allowed_file(filename, allowed_extensions):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed_extensions


def is_safe_url(target):
    ref_url = urlparse(request.host_url)
    test_url = urlparse(urljoin(request.host_url, target))
    return (
        test_url.scheme in ('http', 'https') and
        ref_url.netloc == test_url.netloc
    )


def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or not getattr(current_user, 'is_admin', False):
            flash("Admin access required.", "danger")
            return redirect(url_for('dashboard'))
        return f(*args, **kwargs)
    return decorated_function


def wants_json():
    return request.is_json or request.accept_mimetypes.best == 'application/json'


def initials_from_name(name):
    parts = [part for part in (name or '').split() if part]
    return "".join(part[0] for part in parts).upper() or "U"


def relative_time(when, now=None):
    if when is None:
        return ""
    now = now or datetime.utcnow()
    diff = abs(now - when)
    hours = int(diff.total_seconds() // 3600)
    days = diff.days
    if hours < 1:
        return "Just now"
    if hours < 24:
        return "1 hour ago" if hours == 1 else f"{hours} hours ago"
    if days == 1:
        return "1 day ago"
    if days < 7:
        return f"{days} days ago"
    return when.strftime("%m/%d/%Y")


def format_join_date(when, now=None):
    now = now or datetime.utcnow()
    days = math.ceil(abs((now - when).total_seconds()) / 86400)
    if days <= 1:
        return "Joined today"
    if days <= 7:
        return f"Joined {days} days ago"
    if days <= 30:
        return f"Joined {-(-days // 7)} weeks ago"
    return f"Joined {when.strftime('%b %Y')}"


def format_phone_number(phone):
    if not phone:
        return ""
    cleaned = re.sub(r'\D', '', phone)
    if len(cleaned) == 10:
        return f"({cleaned[:3]}) {cleaned[3:6]}-{cleaned[6:]}"
    if len(cleaned) == 11 and cleaned[0] == '1':
        return f"+1 ({cleaned[1:4]}) {cleaned[4:7]}-{cleaned[7:]}"
    return phone


def long_date(when):
    return f"{when.strftime('%A, %B')} {when.day}, {when.year}"


def filter_members(members, term):
    term = (term or '').strip().lower()
    if not term:
        return list(members)
    fields = ('full_name', 'first_name', 'last_name', 'email', 'phone_number', 'location')
    return [
        member for member in members
        if any(term in (getattr(member, field, '') or '').lower() for field in fields)
    ]


def first_error(form):
    """First validation message of a WTForms form, for flashing."""
    for errors in form.errors.values():
        if errors:
            return errors[0]
    return "Please check the form and try again."
