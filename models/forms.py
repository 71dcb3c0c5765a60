from flask_wtf import FlaskForm
from flask_wtf.file import FileField, FileAllowed, FileRequired
from wtforms import (
    PasswordField, StringField, BooleanField, SubmitField, SelectField, TextAreaField, HiddenField
)
from wtforms.validators import DataRequired, Optional, Length, Email, EqualTo, URL
from models.constants import FORUM_CATEGORIES, GALLERY_CATEGORIES, BLOG_CATEGORIES, ALLOWED_EXTENSIONS

IMAGES_ONLY = FileAllowed(sorted(ALLOWED_EXTENSIONS), 'Images only!')
POST_FIELDS_REQUIRED = "Title, content, and category are required"


class LoginForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(message="Email and password are required")])
    password = PasswordField('Password', validators=[DataRequired(message="Email and password are required")])
    submit = SubmitField('Sign In')


class SignUpForm(FlaskForm):
    first_name = StringField('First Name', validators=[DataRequired(), Length(max=64)])
    last_name = StringField('Last Name', validators=[DataRequired(), Length(max=64)])
    email = StringField('Email', validators=[DataRequired(), Email(), Length(max=120)])
    phone_number = StringField('Phone Number', validators=[DataRequired(), Length(max=32)])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=6)])
    confirm_password = PasswordField('Confirm Password', validators=[
        DataRequired(), EqualTo('password', message='Passwords must match')
    ])
    agree_to_terms = BooleanField('I agree to the Terms of Service', validators=[DataRequired()])
    agree_to_privacy = BooleanField('I agree to the Privacy Policy', validators=[DataRequired()])
    submit = SubmitField('Create Account')


class ProfileForm(FlaskForm):
    first_name = StringField('First Name', validators=[Optional(), Length(max=64)])
    last_name = StringField('Last Name', validators=[Optional(), Length(max=64)])
    phone_number = StringField('Phone Number', validators=[Optional(), Length(max=32)])
    location = StringField('Location', validators=[Optional(), Length(max=128)])
    bio = TextAreaField('Bio', validators=[Length(max=1000)])
    avatar_file = FileField('Avatar', validators=[IMAGES_ONLY])
    submit = SubmitField('Update Profile')


class ForumPostForm(FlaskForm):
    title = StringField('Title', validators=[DataRequired(message=POST_FIELDS_REQUIRED), Length(max=200)])
    category = SelectField('Category', choices=[("", "Select a category")] + FORUM_CATEGORIES,
                           validators=[DataRequired(message=POST_FIELDS_REQUIRED)])
    content = TextAreaField('Content', validators=[DataRequired(message=POST_FIELDS_REQUIRED)])
    submit = SubmitField('Publish Post')


class CommentForm(FlaskForm):
    content = TextAreaField('Comment', validators=[DataRequired(message="Post ID and content are required")])
    parent_id = HiddenField()
    submit = SubmitField('Post')


class GalleryUploadForm(FlaskForm):
    title = StringField('Title', validators=[DataRequired(), Length(max=128)])
    category = SelectField('Category', choices=[(c, c) for c in GALLERY_CATEGORIES],
                           validators=[DataRequired()])
    description = TextAreaField('Description', validators=[Optional(), Length(max=1000)])
    image = FileField('Photo', validators=[FileRequired(), IMAGES_ONLY])
    submit = SubmitField('Upload Photo')


class BlogPostForm(FlaskForm):
    title = StringField('Title', validators=[DataRequired(), Length(max=200)])
    category = SelectField('Category', choices=[(c, c) for c in BLOG_CATEGORIES], validators=[DataRequired()])
    excerpt = TextAreaField('Excerpt', validators=[Optional(), Length(max=500)])
    content = TextAreaField('Content', validators=[DataRequired()])
    image_url = StringField('Image URL', validators=[Optional(), URL(), Length(max=255)])
    featured = BooleanField('Featured')
    submit = SubmitField('Publish')


class DeleteForm(FlaskForm):
    submit = SubmitField('Delete')


class BanForm(FlaskForm):
    submit = SubmitField('Ban User')


class PinForm(FlaskForm):
    submit = SubmitField('Toggle Pin')
