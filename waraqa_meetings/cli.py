"""Command-line tool for browsing availability and booking meetings."""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional
from zoneinfo import ZoneInfoNotFoundError

from waraqa_meetings.booking import (
    BookingSession,
    BookingValidationError,
    EvaluationRequest,
    StudentEntry,
    get_booking_flow,
)
from waraqa_meetings.calendar_grid import format_day_key, format_time_label
from waraqa_meetings.calendar_preference import (
    CalendarArtifactHandler,
    CalendarPreferenceStore,
)
from waraqa_meetings.config import AppConfig, load_config
from waraqa_meetings.constants import CALENDAR_PREFERENCES, MEETING_TYPES, MeetingType
from waraqa_meetings.meetings_client import MeetingsClient
from waraqa_meetings.timezones import get_prioritized_meeting_timezones

logger = logging.getLogger(__name__)

WEEKDAY_HEADER = "Su Mo Tu We Th Fr Sa"


def _client(config: AppConfig) -> MeetingsClient:
    return MeetingsClient(config.api.base_url, config.api.token, config.api.timeout)


def _session(
    config: AppConfig,
    client: MeetingsClient,
    meeting_type: str,
    timezone: Optional[str],
    with_artifacts: bool = False,
) -> BookingSession:
    resolved = MeetingType.from_string(meeting_type)
    flow = get_booking_flow(resolved, config.booking.lookahead_days.get(resolved.value))
    preferences = CalendarPreferenceStore(
        config.calendar.preference_path, default=config.calendar.default_preference
    )
    artifacts = CalendarArtifactHandler(config.calendar.ics_path) if with_artifacts else None
    return BookingSession(
        client,
        flow,
        timezone or config.timezone,
        preferences=preferences,
        artifacts=artifacts,
    )


def _print_grid(session: BookingSession) -> None:
    print(f"\n{session.visible_month_key}")
    print(WEEKDAY_HEADER)
    cells = session.month_grid()
    for row_start in range(0, len(cells), 7):
        row = []
        for cell in cells[row_start:row_start + 7]:
            if cell is None:
                row.append("  ")
            elif cell.selectable:
                row.append(f"{cell.day_number:>2}")
            else:
                row.append(" .")
        print(" ".join(row))


async def show_availability(
    config: AppConfig, meeting_type: str, timezone: Optional[str], month: Optional[str]
) -> int:
    client = _client(config)
    try:
        try:
            session = _session(config, client, meeting_type, timezone)
            if month:
                session.show_month(month)
        except (ZoneInfoNotFoundError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        if not await session.load_availability():
            print(f"Error: {session.error.message if session.error else 'no availability'}")
            return 1

        entries = session.day_entries
        if not entries:
            print("No available times in the next few days.")
        for bucket in entries:
            times = ", ".join(
                f"{format_time_label(slot.start, session.timezone)} [{slot.slot_id}]"
                for slot in bucket.slots
            )
            print(f"{bucket.title}: {times}")
        _print_grid(session)
        return 0
    finally:
        await client.close()


def _parse_student(value: str) -> StudentEntry:
    """``"First Last"`` or ``"First Last:age"``."""
    name, _, age = value.partition(":")
    first, _, last = name.strip().partition(" ")
    return StudentEntry(first_name=first, last_name=last, age=age or None)


async def book_evaluation(config: AppConfig, args: argparse.Namespace) -> int:
    client = _client(config)
    try:
        try:
            session = _session(
                config,
                client,
                MeetingType.NEW_STUDENT_EVALUATION.value,
                args.timezone,
                with_artifacts=True,
            )
        except (ZoneInfoNotFoundError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        if args.calendar:
            session.calendar_preference = args.calendar
        if not await session.load_availability():
            print(f"Error: {session.error.message if session.error else 'no availability'}")
            return 1

        slot = next(
            (window for window in session.availability if window.slot_id == args.start_utc),
            None,
        )
        if slot is None:
            print("Error: That slot is no longer available. Please refresh and try again.")
            return 1
        try:
            session.select_day(format_day_key(slot.start, session.timezone))
            session.select_slot(slot.slot_id)
        except BookingValidationError as e:
            print(f"Error: {e}")
            return 1

        request = EvaluationRequest(
            guardian_name=args.name or "",
            guardian_email=args.email or "",
            guardian_phone=args.phone or "",
            students=[_parse_student(value) for value in args.student or []],
            notes=args.notes or "",
        )
        result = await session.submit(request)
        if result is None:
            print(f"Error: {session.error.message if session.error else 'booking failed'}")
            return 1

        print(result.message)
        action = session.calendar_action
        if action and action.kind == "ics":
            print(f"Calendar file saved to {action.target}")
        elif action:
            print(f"Opened {action.target}")
        return 0
    finally:
        await client.close()


def preference(config: AppConfig, value: Optional[str]) -> int:
    store = CalendarPreferenceStore(
        config.calendar.preference_path, default=config.calendar.default_preference
    )
    if value:
        store.set(value)
    print(store.get())
    return 0


def list_timezones(config: AppConfig) -> int:
    for option in get_prioritized_meeting_timezones(config.timezone):
        print(f"{option['value']:<32} {option['label']}")
    return 0


def main() -> None:
    """Run the meetings command-line tool."""
    parser = argparse.ArgumentParser(description="Browse availability and book Waraqa meetings")
    parser.add_argument(
        "--config",
        help="Path to configuration file",
        default=os.environ.get("WARAQA_CONFIG"),
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    availability_parser = subparsers.add_parser(
        "availability", help="Show bookable days and times"
    )
    availability_parser.add_argument(
        "--type",
        dest="meeting_type",
        default=MeetingType.NEW_STUDENT_EVALUATION.value,
        choices=MEETING_TYPES,
        help="Meeting type to show availability for",
    )
    availability_parser.add_argument("--timezone", help="IANA timezone to view in")
    availability_parser.add_argument("--month", help="Month to show (YYYY-MM)")

    book_parser = subparsers.add_parser(
        "book-evaluation", help="Book an evaluation session"
    )
    book_parser.add_argument(
        "--start-utc",
        required=True,
        help="Slot id as shown by 'availability' (e.g. 2024-06-10T09:00:00.000Z)",
    )
    book_parser.add_argument("--timezone", help="IANA timezone of the guardian")
    book_parser.add_argument("--name", help="Guardian name")
    book_parser.add_argument("--email", help="Guardian email")
    book_parser.add_argument("--phone", help="Guardian phone")
    book_parser.add_argument(
        "--student",
        action="append",
        help="Student as 'First Last' or 'First Last:age'; repeat for more",
    )
    book_parser.add_argument("--notes", help="Notes for the evaluator")
    book_parser.add_argument(
        "--calendar",
        choices=CALENDAR_PREFERENCES,
        help="Calendar to add the meeting to (saved for next time)",
    )

    preference_parser = subparsers.add_parser(
        "preference", help="Show or set the calendar preference"
    )
    preference_parser.add_argument("value", nargs="?", choices=CALENDAR_PREFERENCES)

    subparsers.add_parser("timezones", help="List meeting timezones")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, os.environ.get("LOG_LEVEL", "WARNING")),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(2)

    if args.command == "availability":
        code = asyncio.run(
            show_availability(config, args.meeting_type, args.timezone, args.month)
        )
    elif args.command == "book-evaluation":
        code = asyncio.run(book_evaluation(config, args))
    elif args.command == "preference":
        code = preference(config, args.value)
    else:
        code = list_timezones(config)
    sys.exit(code)


if __name__ == "__main__":
    main()
