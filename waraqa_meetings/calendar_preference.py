"""Calendar preference storage and delivery of booking calendar artifacts.

The preference is an explicit, injected value: components receive a
``CalendarPreferenceStore`` instead of reaching for global state.

Read contract: ``get()`` never raises. A missing or unreadable file, or an
unknown stored value, yields the store's default.

Write contract: ``set()`` rejects unknown values with ``ValueError`` and
otherwise writes atomically. I/O failures are logged and do not raise.
"""

import logging
import re
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import yaml  # type: ignore

from waraqa_meetings.constants import CALENDAR_PREFERENCES
from waraqa_meetings.models import CalendarLinks

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_PREFERENCE = "google"
PREFERENCE_KEY = "calendar_preference"


class CalendarPreferenceStore:
    def __init__(self, path: Path, default: str = DEFAULT_CALENDAR_PREFERENCE):
        if default not in CALENDAR_PREFERENCES:
            raise ValueError(f"Invalid default calendar preference '{default}'")
        self.path = Path(path).expanduser()
        self.default = default

    def get(self) -> str:
        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            return self.default
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Unable to read stored calendar preference: {e}")
            return self.default

        value = data.get(PREFERENCE_KEY) if isinstance(data, dict) else None
        if value not in CALENDAR_PREFERENCES:
            if value is not None:
                logger.warning(f"Ignoring unknown calendar preference {value!r}")
            return self.default
        return value

    def set(self, value: str) -> None:
        if value not in CALENDAR_PREFERENCES:
            raise ValueError(
                f"Invalid calendar preference '{value}'. "
                f"Must be one of: {', '.join(CALENDAR_PREFERENCES)}"
            )
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                yaml.safe_dump({PREFERENCE_KEY: value}, f, sort_keys=False)
            tmp_path.replace(self.path)
        except OSError as e:
            logger.warning(f"Unable to persist calendar preference: {e}")


@dataclass
class CalendarAction:
    """What was done with a booking's calendar artifact."""

    kind: str  # "link" or "ics"
    target: str


def _safe_filename(filename: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "-", filename).strip("-") or "meeting.ics"
    if not name.endswith(".ics"):
        name += ".ics"
    return name


class CalendarArtifactHandler:
    """Opens a provider deep link or saves the ICS file after a booking."""

    def __init__(
        self,
        ics_dir: Path,
        open_url: Callable[[str], object] = webbrowser.open,
    ):
        self.ics_dir = Path(ics_dir).expanduser()
        self.open_url = open_url

    def write_ics(self, ics_content: str, filename: str = "meeting.ics") -> Path:
        self.ics_dir.mkdir(parents=True, exist_ok=True)
        path = self.ics_dir / _safe_filename(filename)
        path.write_text(ics_content, encoding="utf-8")
        logger.info(f"Saved calendar file to {path}")
        return path

    def deliver(
        self,
        links: CalendarLinks,
        preference: str,
        filename: str = "meeting.ics",
    ) -> Optional[CalendarAction]:
        artifact = select_artifact(links, preference)
        if artifact is None:
            logger.info(f"No calendar artifact for preference {preference!r}")
            return None
        if artifact.kind == "link":
            self.open_url(artifact.target)
            return artifact
        path = self.write_ics(artifact.target, filename)
        return CalendarAction(kind="ics", target=str(path))


def select_artifact(links: CalendarLinks, preference: str) -> Optional[CalendarAction]:
    """Pick the artifact matching ``preference``.

    For links the target is the URL; for ``ics`` it is the file content.
    """
    if preference == "google" and links.google_calendar_link:
        return CalendarAction(kind="link", target=links.google_calendar_link)
    if preference == "outlook" and links.outlook_calendar_link:
        return CalendarAction(kind="link", target=links.outlook_calendar_link)
    if preference == "apple" and links.ics_content:
        return CalendarAction(kind="ics", target=links.ics_content)
    return None
