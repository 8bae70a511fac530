"""Dashboard and notification tools."""

from typing import Any

from pydantic import Field

from ..desk import LibraryDesk
from .base import TokenInput, dump, format_success_response, run_tool


async def dashboard_stats_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: TokenInput) -> dict[str, Any]:
        stats = desk.dashboard_stats(params.token)
        message = (
            f"{stats.total_books} books, {stats.total_users} users, "
            f"{stats.total_borrowed} borrowed ({stats.overdue_books} overdue), "
            f"{stats.availability_rate}% of copies available"
        )
        return format_success_response(message, {"stats": dump(stats)})

    return await run_tool("dashboard_stats", TokenInput, arguments, action)


class NotificationsInput(TokenInput):
    limit: int = Field(default=50, ge=1, le=200)


async def notifications_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: NotificationsInput) -> dict[str, Any]:
        notifications = desk.notifications(params.token, params.limit)
        unread = sum(1 for n in notifications if not n.is_read)
        return format_success_response(
            f"{len(notifications)} notification(s), {unread} unread",
            {"notifications": dump(notifications)},
        )

    return await run_tool("notifications", NotificationsInput, arguments, action)


class MarkReadInput(TokenInput):
    notification_id: int = Field(..., ge=1)


async def mark_notification_read_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: MarkReadInput) -> dict[str, Any]:
        marked = desk.mark_notification_read(params.token, params.notification_id)
        message = "Notification marked as read" if marked else "Notification not found"
        return format_success_response(message, {"marked": marked})

    return await run_tool("mark_notification_read", MarkReadInput, arguments, action)


dashboard_stats = {
    "name": "dashboard_stats",
    "description": (
        "Library totals, availability rate, the last week of activity and recent "
        "notifications (admin only)."
    ),
    "inputSchema": TokenInput.model_json_schema(),
    "handler": dashboard_stats_handler,
}

notifications = {
    "name": "notifications",
    "description": "List your notifications, newest first.",
    "inputSchema": NotificationsInput.model_json_schema(),
    "handler": notifications_handler,
}

mark_notification_read = {
    "name": "mark_notification_read",
    "description": "Mark one of your notifications as read.",
    "inputSchema": MarkReadInput.model_json_schema(),
    "handler": mark_notification_read_handler,
}
