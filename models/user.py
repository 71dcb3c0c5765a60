from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
from extensions import db

PLACEHOLDER_AVATAR = '/static/placeholder.svg'


class User(db.Model, UserMixin):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    first_name = db.Column(db.String(64), default="")
    last_name = db.Column(db.String(64), default="")
    phone_number = db.Column(db.String(32), default="")
    bio = db.Column(db.Text, default="")
    location = db.Column(db.String(128), default="")
    avatar_url = db.Column(db.String(255), nullable=True)
    is_admin = db.Column(db.Boolean, default=False)
    email_verified = db.Column(db.Boolean, default=False)
    email_verification_token = db.Column(db.String(256), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_seen = db.Column(db.DateTime, default=datetime.utcnow)
    last_known_ip = db.Column(db.String(45))

    def set_password(self, password):
        self.password_hash = generate_password_hash(
            password,
            method='pbkdf2:sha256',
            salt_length=16
        )

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def display_name(self):
        """Name stamped on posts and replies written by this user."""
        if self.full_name:
            return self.full_name
        if self.email:
            return self.email.split('@')[0]
        return "Anonymous"

    @property
    def greeting_name(self):
        return self.first_name or (self.email.split('@')[0] if self.email else "") or "User"

    @property
    def initials(self):
        first, last = self.first_name or "", self.last_name or ""
        if first and last:
            return f"{first[0]}{last[0]}".upper()
        if first:
            return first[0].upper()
        if self.email:
            return self.email[0].upper()
        return "U"

    @property
    def avatar(self):
        return self.avatar_url or PLACEHOLDER_AVATAR

    def __repr__(self):
        return f'<User {self.email}>'
