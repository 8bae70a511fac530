"""Account Tools - sign-up, login and user administration.

Tools:
- register_member: Self-service sign-up (always a member)
- login: Exchange email and password for a bearer token
- logout: Revoke a bearer token
- create_user: Create a librarian, member or admin (admin only)
- create_member: Staff sign-up for a new member
- delete_user: Remove an account with no circulation history (admin only)
- change_password: Set a new password for yourself or, as staff, another user
- list_users: Staff view of library users
"""

from typing import Any

from pydantic import BaseModel, EmailStr, Field

from ..desk import LibraryDesk
from ..models.user import Role
from .base import TokenInput, dump, format_success_response, run_tool


class RegisterInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["Jane Smith"])
    email: EmailStr = Field(..., examples=["jane@example.com"])
    password: str = Field(..., min_length=6, max_length=128, repr=False)


async def register_member_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: RegisterInput) -> dict[str, Any]:
        user = desk.register(params.name, params.email, params.password)
        return format_success_response(
            f"Welcome, {user.name}! Your member account has been created.",
            {"user": dump(user)},
        )

    return await run_tool("register_member", RegisterInput, arguments, action)


class LoginInput(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, repr=False)


async def login_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: LoginInput) -> dict[str, Any]:
        access = desk.login(params.email, params.password)
        return format_success_response(
            f"Logged in as {access.user.name} ({access.user.role.value})",
            {
                "token": access.token,
                "expires_at": access.expires_at.isoformat(),
                "user": dump(access.user),
            },
        )

    return await run_tool("login", LoginInput, arguments, action)


async def logout_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: TokenInput) -> dict[str, Any]:
        revoked = desk.logout(params.token)
        message = "Logged out" if revoked else "Token was not active"
        return format_success_response(message, {"revoked": revoked})

    return await run_tool("logout", TokenInput, arguments, action)


class CreateUserInput(TokenInput, RegisterInput):
    role: Role = Field(..., description="admin, librarian or member")


async def create_user_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: CreateUserInput) -> dict[str, Any]:
        user = desk.create_user(
            params.token, params.name, params.email, params.password, params.role
        )
        return format_success_response(
            f"Created {user.role.value} account for {user.name}", {"user": dump(user)}
        )

    return await run_tool("create_user", CreateUserInput, arguments, action)


class CreateMemberInput(TokenInput, RegisterInput):
    pass


async def create_member_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: CreateMemberInput) -> dict[str, Any]:
        user = desk.create_member(params.token, params.name, params.email, params.password)
        return format_success_response(
            f"Created member account for {user.name}", {"user": dump(user)}
        )

    return await run_tool("create_member", CreateMemberInput, arguments, action)


class UserIdInput(TokenInput):
    user_id: int = Field(..., gt=0)


async def delete_user_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: UserIdInput) -> dict[str, Any]:
        user = desk.delete_user(params.token, params.user_id)
        return format_success_response(
            f"Deleted {user.role.value} account for {user.name}", {"user": dump(user)}
        )

    return await run_tool("delete_user", UserIdInput, arguments, action)


class ChangePasswordInput(UserIdInput):
    new_password: str = Field(..., min_length=6, max_length=128, repr=False)


async def change_password_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: ChangePasswordInput) -> dict[str, Any]:
        user = desk.change_password(params.token, params.user_id, params.new_password)
        return format_success_response(f"Password updated for {user.name}", {"user": dump(user)})

    return await run_tool("change_password", ChangePasswordInput, arguments, action)

class ListUsersInput(TokenInput):
    role: Role | None = Field(
        default=None, description="Only list users with this role (admins are hidden otherwise)"
    )


async def list_users_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: ListUsersInput) -> dict[str, Any]:
        users = desk.list_users(params.token, params.role)
        return format_success_response(f"{len(users)} user(s)", {"users": dump(users)})

    return await run_tool("list_users", ListUsersInput, arguments, action)


register_member = {
    "name": "register_member",
    "description": "Create a member account. Emails are unique; passwords need 6+ characters.",
    "inputSchema": RegisterInput.model_json_schema(),
    "handler": register_member_handler,
}

login = {
    "name": "login",
    "description": "Log in with email and password. Returns the bearer token other tools need.",
    "inputSchema": LoginInput.model_json_schema(),
    "handler": login_handler,
}

logout = {
    "name": "logout",
    "description": "Revoke a bearer token.",
    "inputSchema": TokenInput.model_json_schema(),
    "handler": logout_handler,
}

create_user = {
    "name": "create_user",
    "description": "Create a user with any role (admin only).",
    "inputSchema": CreateUserInput.model_json_schema(),
    "handler": create_user_handler,
}

list_users = {
    "name": "list_users",
    "description": "List library users, newest first (staff only).",
    "inputSchema": ListUsersInput.model_json_schema(),
    "handler": list_users_handler,
}

create_member = {
    "name": "create_member",
    "description": "Create a member account on a patron's behalf (staff only).",
    "inputSchema": CreateMemberInput.model_json_schema(),
    "handler": create_member_handler,
}

delete_user = {
    "name": "delete_user",
    "description": (
        "Delete a user account (admin only). Accounts with loans, requests or payments "
        "on record cannot be deleted."
    ),
    "inputSchema": UserIdInput.model_json_schema(),
    "handler": delete_user_handler,
}

change_password = {
    "name": "change_password",
    "description": (
        "Change a password. Members change their own; librarians may reset member "
        "passwords; admins may reset any. The account owner is notified."
    ),
    "inputSchema": ChangePasswordInput.model_json_schema(),
    "handler": change_password_handler,
}
