"""Aggregates for the admin dashboard and circulation counters."""

from datetime import datetime

from pydantic import BaseModel, Field

from .notification import Notification


class LoanCounts(BaseModel):
    borrowed: int = Field(..., ge=0, description="All open loans, overdue included")
    overdue: int = Field(..., ge=0, description="Open loans past their due date")


class ActivityItem(BaseModel):
    type: str
    message: str
    timestamp: datetime


class DashboardStats(BaseModel):
    total_books: int
    total_users: int
    total_borrowed: int
    overdue_books: int
    availability_rate: int = Field(..., ge=0, le=100)
    recent_activity: list[ActivityItem] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
