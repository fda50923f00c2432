"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh-token
- POST /auth/logout

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens and longer-lived refresh tokens (JWTs signed
  with independent secrets)
- Stores refresh tokens in DB (RefreshToken model) so they can be rotated once
  and revoked on logout
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify

from api.errors import auth_error_response, error_response
from api.extensions import auth_service
from models.schemas.user import UserCreateSchema, UserLoginSchema, UserOutSchema, RefreshTokenSchema

bp = Blueprint("auth", __name__)

user_create_schema = UserCreateSchema()
user_login_schema = UserLoginSchema()
refresh_token_schema = RefreshTokenSchema()
user_out_schema = UserOutSchema()


def _session_payload(message: str, session) -> dict:
    return {
        "message": message,
        "user": user_out_schema.dump(session.user),
        "token": session.tokens.access_token,
        "refreshToken": session.tokens.refresh_token,
    }


@bp.post("/register")
def register():
    """
    Register a new user and open a session.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password, firstName, lastName]
          properties:
            email: { type: string }
            password: { type: string }
            firstName: { type: string }
            lastName: { type: string }
    responses:
      201:
        description: Created (returns user, token and refreshToken)
      400:
        description: Validation error or email already registered
    """
    payload = request.get_json(silent=True) or {}
    data = user_create_schema.load(payload)

    result = auth_service().register(
        email=data["email"],
        password=data["password"],
        first_name=data["first_name"],
        last_name=data["last_name"],
    )
    if not result.ok:
        return auth_error_response(result.error)
    return jsonify(_session_payload("User registered successfully", result.value)), 201


@bp.post("/login")
def login():
    """
    Login: return token and refreshToken
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email, password]
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)

    result = auth_service().login(data["email"], data["password"])
    if not result.ok:
        return auth_error_response(result.error)
    return jsonify(_session_payload("Login successful", result.value)), 200


@bp.post("/refresh-token")
def refresh_token():
    """
    Exchange a refresh token for a new token pair (single use rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [refreshToken]
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: OK (returns a new token and refreshToken)
      400:
        description: refreshToken missing
      401:
        description: Invalid or expired refresh token
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_token_schema.load(payload)

    result = auth_service().rotate(data["refresh_token"])
    if not result.ok:
        return auth_error_response(result.error)
    tokens = result.value
    return jsonify(
        {
            "message": "Token refreshed successfully",
            "token": tokens.access_token,
            "refreshToken": tokens.refresh_token,
        }
    ), 200


@bp.post("/logout")
def logout():
    """
    Logout: revokes the refresh token. Calling it again is harmless.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [refreshToken]
           properties:
             refreshToken: { type: string }
    responses:
      204:
        description: ""
      400:
        description: refreshToken missing
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_token_schema.load(payload)

    if not auth_service().revoke(data["refresh_token"]):
        return error_response("INTERNAL_ERROR", "Could not log out, please retry", 500)
    return ("", 204)
