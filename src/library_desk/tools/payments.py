"""Payment Tools - Fines and Settlement

Tools:
- member_fines: Outstanding fines for a member
- record_payment: Settle the fine on one loan
- list_payments: Every payment (staff)
- member_payments: Payments made by one member
"""

from decimal import Decimal
from typing import Any

from pydantic import Field

from ..desk import LibraryDesk
from ..models.payment import PaymentCreate, PaymentMethod
from .base import TokenInput, dump, format_success_response, run_tool


class MemberInput(TokenInput):
    member_id: int = Field(..., ge=1, description="ID of the member")


async def member_fines_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: MemberInput) -> dict[str, Any]:
        summary = desk.member_fines(params.token, params.member_id)
        if summary.fines:
            message = (
                f"Member {summary.member_id} owes ${summary.total:.2f} "
                f"across {len(summary.fines)} loan(s)"
            )
        else:
            message = f"Member {summary.member_id} has no outstanding fines"
        return format_success_response(message, {"fines": dump(summary)})

    return await run_tool("member_fines", MemberInput, arguments, action)


class RecordPaymentInput(TokenInput):
    member_id: int = Field(..., ge=1, description="Member the loan belongs to")
    issued_book_id: int = Field(..., ge=1, description="Loan whose fine is being paid")
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, examples=["2.50"])
    payment_method: PaymentMethod = PaymentMethod.CASH
    description: str | None = Field(default=None, max_length=500)


async def record_payment_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: RecordPaymentInput) -> dict[str, Any]:
        payment = desk.record_payment(
            params.token,
            PaymentCreate(**params.model_dump(exclude={"token"})),
        )
        return format_success_response(
            f"Payment {payment.id} of ${payment.amount:.2f} recorded for loan "
            f"{payment.issued_book_id}",
            {"payment": dump(payment)},
        )

    return await run_tool("record_payment", RecordPaymentInput, arguments, action)


async def list_payments_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: TokenInput) -> dict[str, Any]:
        payments = desk.list_payments(params.token)
        total = sum((p.amount for p in payments), Decimal("0.00"))
        return format_success_response(
            f"{len(payments)} payment(s) totalling ${total:.2f}",
            {"payments": dump(payments)},
        )

    return await run_tool("list_payments", TokenInput, arguments, action)


async def member_payments_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: MemberInput) -> dict[str, Any]:
        payments = desk.member_payments(params.token, params.member_id)
        return format_success_response(
            f"{len(payments)} payment(s) by member {params.member_id}",
            {"payments": dump(payments)},
        )

    return await run_tool("member_payments", MemberInput, arguments, action)


member_fines = {
    "name": "member_fines",
    "description": (
        "Show a member's outstanding fines per loan and in total. Members may only "
        "view their own fines."
    ),
    "inputSchema": MemberInput.model_json_schema(),
    "handler": member_fines_handler,
}

record_payment = {
    "name": "record_payment",
    "description": (
        "Pay the fine on one loan. Staff may record payments for any member; members "
        "may pay their own. A loan's fine can only be paid once."
    ),
    "inputSchema": RecordPaymentInput.model_json_schema(),
    "handler": record_payment_handler,
}

list_payments = {
    "name": "list_payments",
    "description": "List every payment with member and processor names (staff only).",
    "inputSchema": TokenInput.model_json_schema(),
    "handler": list_payments_handler,
}

member_payments = {
    "name": "member_payments",
    "description": "List the payments made by one member. Members may only view their own.",
    "inputSchema": MemberInput.model_json_schema(),
    "handler": member_payments_handler,
}
