# parsing.py
"""Extract a daily-added client record from pasted free text.

Accepted input looks like::

    Client Name: Jason
    Age: 40
    Work: Captain in a cruise ship
    Location: UAE

Labels are case-insensitive and may come in any order. ``Name`` or
``Client Name``, ``Loc`` or ``Location`` and ``Work`` or ``Occupation`` are
all understood. A label may follow other text on its line
("1) Name: ...", "Client's name: ...") but not sit inside a word.
"""
import re
from dataclasses import dataclass

from errors import ParseError

NAME_RE = re.compile(r"\b(?:client[ \t]+)?name[ \t]*:[ \t]*(.*)$", re.IGNORECASE | re.MULTILINE)
AGE_RE = re.compile(r"\bage[ \t]*:[ \t]*(.*)$", re.IGNORECASE | re.MULTILINE)
LOCATION_RE = re.compile(r"\b(?:location|loc)[ \t]*:[ \t]*(.*)$", re.IGNORECASE | re.MULTILINE)
WORK_RE = re.compile(r"\b(?:work|occupation)[ \t]*:[ \t]*(.*)$", re.IGNORECASE | re.MULTILINE)
LEADING_DIGITS_RE = re.compile(r"^(\d+)")


@dataclass(frozen=True)
class ParsedClientDetails:
    name: str
    age: int
    location: str
    work: str


def _field(pattern, text):
    match = pattern.search(text)
    if not match:
        return ""
    return match.group(1).strip()


def parse_client_details(text: str) -> ParsedClientDetails:
    if not text or not text.strip():
        raise ParseError("No details provided. Please paste the client details.")

    name = _field(NAME_RE, text)
    raw_age = _field(AGE_RE, text)
    location = _field(LOCATION_RE, text)
    work = _field(WORK_RE, text)

    missing = [label for label, value in (("name", name), ("age", raw_age),
                                          ("location", location), ("work", work)) if not value]
    if missing:
        raise ParseError("Could not parse details, missing: " + ", ".join(missing))

    # "59yrs old" -> 59
    age_match = LEADING_DIGITS_RE.match(raw_age)
    if not age_match:
        raise ParseError(f"Age must be a number, got '{raw_age}'")

    return ParsedClientDetails(name=name, age=int(age_match.group(1)), location=location, work=work)
