"""DTR payroll command line interface.

Provides operational tools for:
- Schema creation
- Classifying a single day from a JSON document (no database)
- Classifying attendance for a date range
- Generating the payroll periods of a year
- Computing and recomputing a payroll period
- Recording manual loan payments

Usage:
    dtr-payroll init-db
    dtr-payroll classify --input day.json
    dtr-payroll classify-range --employee-id X --start 2025-01-01 --end 2025-01-15
    dtr-payroll generate-periods --cycle semi_monthly --year 2025
    dtr-payroll compute --period-id X
    dtr-payroll recompute --period-id X --force
    dtr-payroll loan-payment --loan-id X --amount 500.00
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable
from uuid import UUID

from pydantic import ValidationError as SchemaValidationError

from dtr_payroll.calculators.time_classifier import TimeClassifier
from dtr_payroll.calculators.types import CycleType, HolidayCalendar
from dtr_payroll.config import get_settings
from dtr_payroll.database import create_schema, get_session
from dtr_payroll.errors import PayrollEngineError
from dtr_payroll.schemas import ClassifyRequest
from dtr_payroll.services.attendance_service import AttendanceService
from dtr_payroll.services.ledger_service import LedgerService
from dtr_payroll.services.payroll_service import (
    PayrollComputationService,
    PeriodComputationResult,
)

logger = logging.getLogger("dtr_payroll")


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _describe(error: Exception) -> dict[str, Any]:
    if isinstance(error, PayrollEngineError):
        return error.to_dict()
    return {"code": type(error).__name__, "message": str(error)}


class PayrollCli:
    """DTR payroll command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="dtr-payroll",
            description="Time classification and payroll computation tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create database tables")

        classify = subparsers.add_parser(
            "classify",
            help="Classify one employee-day from a JSON document",
        )
        classify.add_argument(
            "--input",
            type=Path,
            help="Path to the request document (defaults to stdin)",
        )

        classify_range = subparsers.add_parser(
            "classify-range",
            help="Classify stored punches into daily time records",
        )
        classify_range.add_argument("--employee-id", type=parse_uuid, required=True)
        classify_range.add_argument("--start", type=parse_date, required=True)
        classify_range.add_argument("--end", type=parse_date, required=True)
        classify_range.add_argument(
            "--force",
            action="store_true",
            help="Reclassify days a reviewer already acted on",
        )

        compute = subparsers.add_parser("compute", help="Compute a payroll period")
        compute.add_argument("--period-id", type=parse_uuid, required=True)

        recompute = subparsers.add_parser(
            "recompute",
            help="Recompute a payroll period, replacing draft entries",
        )
        recompute.add_argument("--period-id", type=parse_uuid, required=True)
        recompute.add_argument(
            "--force",
            action="store_true",
            help="Also replace voided entries",
        )

        periods = subparsers.add_parser(
            "generate-periods",
            help="Create the draft payroll periods of a year",
        )
        periods.add_argument(
            "--cycle",
            choices=[CycleType.SEMI_MONTHLY.value, CycleType.MONTHLY.value],
            default=CycleType.SEMI_MONTHLY.value,
        )
        periods.add_argument("--year", type=int, required=True)

        payment = subparsers.add_parser("loan-payment", help="Record a manual loan payment")
        payment.add_argument("--loan-id", type=parse_uuid, required=True)
        payment.add_argument("--amount", type=Decimal, required=True)
        payment.add_argument("--date", type=parse_date, default=None)
        payment.add_argument("--remarks", type=str, default=None)

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[..., int]] = {
            "init-db": self._cmd_init_db,
            "classify": self._cmd_classify,
            "classify-range": self._cmd_classify_range,
            "compute": self._cmd_compute,
            "recompute": self._cmd_compute,
            "generate-periods": self._cmd_generate_periods,
            "loan-payment": self._cmd_loan_payment,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except PayrollEngineError as e:
            _print_json({"error": e.to_dict()})
            return 2

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        asyncio.run(create_schema())
        print("Schema created.")
        return 0

    def _cmd_classify(self, args: argparse.Namespace) -> int:
        """Classify a single day without touching the database."""
        raw = args.input.read_text() if args.input else sys.stdin.read()
        try:
            request = ClassifyRequest.model_validate_json(raw)
        except SchemaValidationError as e:
            print(f"Invalid request: {e}", file=sys.stderr)
            return 1

        classifier = TimeClassifier(get_settings().duplicate_punch_threshold_minutes)
        snapshot = classifier.classify(
            employee_id=request.employee_id,
            work_date=request.work_date,
            punches=[p.to_domain() for p in request.punches],
            schedule=request.schedule.to_domain() if request.schedule else None,
            holidays=HolidayCalendar([h.to_domain() for h in request.holidays]),
            shift_name=request.shift_name,
            on_leave=request.on_leave,
        )
        _print_json(snapshot.to_dict())
        return 0

    def _cmd_classify_range(self, args: argparse.Namespace) -> int:
        async def _run() -> int:
            async with get_session() as session:
                service = AttendanceService(session)
                result = await service.classify_range(
                    args.employee_id, args.start, args.end, actor_id="cli", force=args.force
                )
                _print_json(
                    {
                        "classified": len(result.records),
                        "unchanged": result.unchanged,
                        "skipped": result.skipped,
                        "flagged": [
                            {"date": r.work_date, "reason": r.review_reason}
                            for r in result.flagged
                        ],
                    }
                )
            return 0

        return asyncio.run(_run())

    def _cmd_compute(self, args: argparse.Namespace) -> int:
        async def _run() -> PeriodComputationResult:
            async with get_session() as session:
                service = PayrollComputationService(session)
                if args.command == "recompute":
                    return await service.recompute(args.period_id, force=args.force)
                return await service.compute(args.period_id)

        result = asyncio.run(_run())
        _print_json(
            {
                "payroll_period_id": result.payroll_period_id,
                "entries": {
                    str(employee_id): {"status": entry.status, "net_pay": entry.net_pay}
                    for employee_id, entry in result.entries.items()
                },
                "skipped": result.skipped,
                "errors": {
                    str(employee_id): _describe(error)
                    for employee_id, error in result.errors.items()
                },
            }
        )
        return 0 if not result.errors else 3

    def _cmd_generate_periods(self, args: argparse.Namespace) -> int:
        async def _run() -> int:
            async with get_session() as session:
                service = PayrollComputationService(session)
                created = await service.generate_periods(CycleType(args.cycle), args.year)
                _print_json(
                    [
                        {
                            "payroll_period_id": period.payroll_period_id,
                            "name": period.name,
                            "period_number": period.period_number,
                            "start_date": period.start_date,
                            "end_date": period.end_date,
                            "pay_date": period.pay_date,
                        }
                        for period in created
                    ]
                )
            return 0

        return asyncio.run(_run())

    def _cmd_loan_payment(self, args: argparse.Namespace) -> int:
        async def _run() -> int:
            async with get_session() as session:
                ledger = LedgerService(session)
                payment = await ledger.record_loan_payment(
                    args.loan_id,
                    args.amount,
                    args.date or ledger.clock.now().date(),
                    remarks=args.remarks,
                )
                _print_json(
                    {
                        "payment_id": payment.payment_id,
                        "loan_id": payment.loan_id,
                        "amount": payment.amount,
                        "balance_before": payment.balance_before,
                        "balance_after": payment.balance_after,
                        "payment_date": payment.payment_date,
                    }
                )
            return 0

        return asyncio.run(_run())


def main() -> int:
    """CLI entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
