from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort

from api.errors import auth_error_response
from api.extensions import auth_service, user_service
from models.role import Role, permissions_for
from models.schemas.user import PasswordChangeSchema, RoleUpdateSchema, UserOutSchema
from utils.decorators import authenticate, authorize

MAX_LIMIT = 100

bp = Blueprint("users", __name__)

user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)
password_change_schema = PasswordChangeSchema()
role_update_schema = RoleUpdateSchema()


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


@bp.get("/users")
@authenticate()
@authorize([Role.ADMIN, Role.MANAGER])
def list_users():
    """
    List users - admin, manager
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
      403: { description: Forbidden }
    """
    page, limit = parse_pagination()
    rows, total = user_service().list_users(page, limit)
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total}
        }
    )


@bp.get("/users/me")
@authenticate()
def me():
    """
    Get current user info and the features the role grants.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
      404:
        description: The account behind the token no longer exists
    """
    user = user_service().find_by_id(g.current_user.user_id)
    if not user:
        abort(404)
    return jsonify(
        {
            "data": user_out_schema.dump(user),
            "permissions": permissions_for(g.current_user.role),
        }
    ), 200


@bp.patch("/users/me/password")
@authenticate()
def change_password():
    """
    Change the current user's password.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [currentPassword, newPassword]
           properties:
             currentPassword: { type: string }
             newPassword: { type: string }
    responses:
      204: { description: Password changed }
      400: { description: Validation error }
      401: { description: Current password is incorrect }
    """
    payload = request.get_json(silent=True) or {}
    data = password_change_schema.load(payload)

    result = auth_service().change_password(
        g.current_user.user_id, data["current_password"], data["new_password"]
    )
    if not result.ok:
        return auth_error_response(result.error)
    return ("", 204)


@bp.patch("/users/<user_id>/role")
@authenticate()
@authorize([Role.ADMIN])
def set_role(user_id: str):
    """
    Admin-only: set the role of a user.
    Body: { "role": "MANAGER" }
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
      -  in: body
         name: body
         schema:
           type: object
           properties:
             role: { type: string, enum: [ADMIN, MANAGER, AGENT, USER] }
    responses:
      200: { description: OK }
      400: { description: Unknown role }
      404: { description: User not found }
    """
    payload = request.get_json(silent=True) or {}
    data = role_update_schema.load(payload)

    result = auth_service().change_role(user_id, data["role"])
    if not result.ok:
        return auth_error_response(result.error)
    return jsonify({"data": user_out_schema.dump(result.value)}), 200
