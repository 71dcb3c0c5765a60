from extensions import db
from datetime import datetime


class GalleryItem(db.Model):
    __tablename__ = 'gallery_items'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(64), nullable=False)
    image_url = db.Column(db.String(255), nullable=False)
    image_path = db.Column(db.String(255), nullable=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    uploader = db.relationship('User', foreign_keys=[uploaded_by])
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
