from marshmallow import Schema, fields, validate, validates, ValidationError

from models.role import Role

MIN_PASSWORD_LENGTH = 8


def _check_password(value):
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class UserCreateSchema(Schema):
    # Emails are matched exactly as stored; no case folding.
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    first_name = fields.String(required=True, data_key="firstName", validate=validate.Length(min=1, max=255))
    last_name = fields.String(required=True, data_key="lastName", validate=validate.Length(min=1, max=255))

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class UserLoginSchema(Schema):
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))


class RefreshTokenSchema(Schema):
    refresh_token = fields.String(required=True, data_key="refreshToken", validate=validate.Length(min=1))


class PasswordChangeSchema(Schema):
    current_password = fields.String(required=True, load_only=True, data_key="currentPassword")
    new_password = fields.String(required=True, load_only=True, data_key="newPassword")

    @validates("new_password")
    def validate_new_password(self, value, **kwargs):
        _check_password(value)


class RoleUpdateSchema(Schema):
    role = fields.Enum(Role, required=True, by_value=True)


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    email = fields.String(allow_none=False)
    first_name = fields.String(data_key="firstName")
    last_name = fields.String(data_key="lastName")
    role = fields.Enum(Role, by_value=True)
    created_at = fields.DateTime(data_key="createdAt")
