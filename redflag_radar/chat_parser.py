"""
CHAT PARSER - Turns raw chat exports into timestamped message lists

SUPPORTED PLATFORMS:
- WhatsApp:     "DD/MM/YYYY, HH:MM am - Sender: Message" and bracketed variants
- Android SMS:  CSV backup ("date","address","body",...) or text lines
- iOS Messages: "[MM/DD/YY, HH:MM:SS AM] +123: Message"
- Email:        forwarded mail or .eml headers + body
- Manual:       free-form "Sender: Message" pastes

All dates are emitted as ISO calendar dates (YYYY-MM-DD) when they can be
parsed, so the scorer can group messages per day.
"""

import re
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class Platform(str, Enum):
    WHATSAPP = "whatsapp"
    SMS_ANDROID = "sms_android"
    SMS_IOS = "sms_ios"
    EMAIL = "email"
    MANUAL = "manual"
    UNKNOWN = "unknown"


@dataclass
class ChatMessage:
    """One message of a transcript"""
    date: str
    time: str
    sender: str
    text: str
    is_media: bool = False
    media_type: Optional[str] = None


@dataclass
class PlatformMetadata:
    platform: Platform
    confidence: float
    detected_format: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "platform": self.platform.value,
            "confidence": self.confidence,
            "detectedFormat": self.detected_format,
        }


@dataclass
class ParsedChat:
    messages: List[ChatMessage] = field(default_factory=list)
    participants: List[str] = field(default_factory=list)
    date_range: Tuple[str, str] = ("", "")

    @property
    def total_messages(self) -> int:
        return len(self.messages)


def _build_parsed_chat(messages: List[ChatMessage], participants: List[str]) -> ParsedChat:
    dates = sorted(m.date for m in messages if m.date)
    date_range = (dates[0], dates[-1]) if dates else ("", "")
    return ParsedChat(messages=messages, participants=participants, date_range=date_range)


def _add_participant(participants: List[str], name: str):
    if name and name not in participants:
        participants.append(name)


def _today() -> str:
    return date.today().isoformat()


def _format_time(value: datetime) -> str:
    return value.strftime("%I:%M:%S %p").lstrip("0")


def _normalize_lines(text: str) -> List[str]:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return [line for line in text.split("\n") if line.strip()]


# ======================================================================
# WHATSAPP
# ======================================================================

# Order matters: most common export formats first
WHATSAPP_PATTERNS = [
    # 29/09/2024, 11:21 am - Sender: Message
    re.compile(r"^(\d{1,2}/\d{1,2}/\d{2,4}),\s*(\d{1,2}:\d{2}\s*(?:am|pm|AM|PM))\s*-\s*(.+?):\s*(.+)$"),
    # 29/09/2024, 11:21:05 am - Sender: Message
    re.compile(r"^(\d{1,2}/\d{1,2}/\d{2,4}),\s*(\d{1,2}:\d{2}:\d{2}\s*(?:am|pm|AM|PM))\s*-\s*(.+?):\s*(.+)$"),
    # [29/09/2024, 11:21:05 AM] Sender: Message
    re.compile(r"^\[(\d{1,2}/\d{1,2}/\d{2,4}),\s*(\d{1,2}:\d{2}:\d{2}\s*(?:AM|PM|am|pm))\]\s*(.+?):\s*(.+)$"),
    # [29/09/2024, 11:21 AM] Sender: Message
    re.compile(r"^\[(\d{1,2}/\d{1,2}/\d{2,4}),\s*(\d{1,2}:\d{2}\s*(?:AM|PM|am|pm))\]\s*(.+?):\s*(.+)$"),
    # 29/09/2024, 23:21:05 - Sender: Message
    re.compile(r"^(\d{1,2}/\d{1,2}/\d{2,4}),\s*(\d{1,2}:\d{2}:\d{2})\s*-\s*(.+?):\s*(.+)$"),
    # [29/09/2024, 23:21:05] Sender: Message
    re.compile(r"^\[(\d{1,2}/\d{1,2}/\d{2,4}),\s*(\d{1,2}:\d{2}:\d{2})\]\s*(.+?):\s*(.+)$"),
]

# Timestamp prefix with no "Sender:" part, e.g. "29/09/2024, 11:21 am - Rahul added Priya"
WHATSAPP_DATED_LINE = re.compile(
    r"^(?:\[\d{1,2}/\d{1,2}/\d{2,4},\s*\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AaPp][Mm])?\]"
    r"|\d{1,2}/\d{1,2}/\d{2,4},\s*\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AaPp][Mm])?\s*-)"
)

WHATSAPP_SYSTEM_MARKERS = (
    "messages and calls are end-to-end encrypted",
    "this chat is end-to-end encrypted",
    "you joined",
    "you left",
    "security code changed",
    "learn more",
)

MEDIA_MARKERS = (
    "<media omitted>",
    "image omitted",
    "video omitted",
    "audio omitted",
    "document omitted",
)


def extract_media_type(text: str) -> str:
    lower = text.lower()
    for media_type in ("image", "video", "audio", "document"):
        if media_type in lower:
            return media_type
    return "media"


def _whatsapp_date(raw: str) -> str:
    """DD/MM/YY or DD/MM/YYYY -> ISO date; raw string if it is not a real date"""
    day, month, year = raw.split("/")
    full_year = 2000 + int(year) if len(year) == 2 else int(year)
    try:
        return date(full_year, int(month), int(day)).isoformat()
    except ValueError:
        return raw


def parse_whatsapp_chat(text: str) -> ParsedChat:
    """Parse a WhatsApp .txt export, joining multi-line messages"""
    lines = _normalize_lines(text or "")
    messages: List[ChatMessage] = []
    participants: List[str] = []

    current: Optional[ChatMessage] = None
    buffer: List[str] = []
    matched_count = 0
    skipped_count = 0

    def flush():
        if current is not None:
            current.text = "\n".join([current.text] + buffer)
            messages.append(current)

    for line in lines:
        match = None
        for pattern in WHATSAPP_PATTERNS:
            match = pattern.match(line)
            if match:
                break

        if match is None:
            if WHATSAPP_DATED_LINE.match(line):
                # System line (group events, encryption notice): ends the current message
                flush()
                buffer = []
                current = None
                skipped_count += 1
            elif current is not None:
                buffer.append(line)
            else:
                skipped_count += 1
            continue

        flush()
        buffer = []
        current = None

        raw_date, raw_time, sender, body = (g.strip() for g in match.groups())
        lower_body = body.lower()

        if any(marker in lower_body for marker in WHATSAPP_SYSTEM_MARKERS):
            skipped_count += 1
            continue

        is_media = any(marker in lower_body for marker in MEDIA_MARKERS)
        current = ChatMessage(
            date=_whatsapp_date(raw_date),
            time=raw_time,
            sender=sender,
            text=body,
            is_media=is_media,
            media_type=extract_media_type(body) if is_media else None,
        )
        _add_participant(participants, sender)
        matched_count += 1

    flush()

    logger.debug(f"WhatsApp parser: matched {matched_count} messages, skipped {skipped_count} lines")
    return _build_parsed_chat(messages, participants)


# ======================================================================
# SMS
# ======================================================================

ANDROID_CSV_ROW = re.compile(r'"([^"]+)","([^"]+)","([^"]+)","(\d+)","(\d+)","(\d+)"')
ANDROID_TEXT_LINE = re.compile(r"^(\d{1,2}/\d{1,2}/\d{4}) (\d{1,2}:\d{2}:\d{2} [AP]M) - (\+?\d+):\s*(.+)$")
IOS_LINE = re.compile(r"^\[(\d{1,2}/\d{1,2}/\d{2}), (\d{1,2}:\d{2}:\d{2} [AP]M)\] (\+?\d+):\s*(.+)$")


def parse_android_sms_csv(text: str) -> ParsedChat:
    """Android SMS backup: "date","address","body","type","read","status" rows"""
    messages: List[ChatMessage] = []
    participants: List[str] = []

    for line in _normalize_lines(text):
        if '"date","address"' in line:
            continue
        match = ANDROID_CSV_ROW.search(line)
        if not match:
            continue

        raw_date, address, body = match.group(1), match.group(2), match.group(3)
        sender = re.sub(r"[<>]", "", address).strip() or "Unknown"
        try:
            sent_at = datetime.strptime(raw_date.strip(), "%Y-%m-%d %H:%M:%S")
            msg_date, msg_time = sent_at.date().isoformat(), _format_time(sent_at)
        except ValueError:
            msg_date, msg_time = raw_date[:10], ""

        messages.append(ChatMessage(date=msg_date, time=msg_time, sender=sender, text=body))
        _add_participant(participants, sender)

    return _build_parsed_chat(messages, participants)


def parse_android_sms_text(text: str) -> ParsedChat:
    """12/25/2024 10:30:45 AM - +1234567890: Message"""
    messages: List[ChatMessage] = []
    participants: List[str] = []

    for line in _normalize_lines(text):
        match = ANDROID_TEXT_LINE.match(line)
        if not match:
            continue
        raw_date, raw_time, sender, body = match.groups()
        try:
            msg_date = datetime.strptime(raw_date, "%m/%d/%Y").date().isoformat()
        except ValueError:
            msg_date = raw_date

        messages.append(ChatMessage(date=msg_date, time=raw_time, sender=sender.strip(), text=body.strip()))
        _add_participant(participants, sender.strip())

    return _build_parsed_chat(messages, participants)


def parse_ios_messages(text: str) -> ParsedChat:
    """[12/25/24, 10:30:45 AM] +1234567890: Message"""
    messages: List[ChatMessage] = []
    participants: List[str] = []

    for line in _normalize_lines(text):
        match = IOS_LINE.match(line)
        if not match:
            continue
        raw_date, raw_time, sender, body = match.groups()
        month, day, year = (int(part) for part in raw_date.split("/"))
        full_year = 2000 + year if year < 50 else 1900 + year
        try:
            msg_date = date(full_year, month, day).isoformat()
        except ValueError:
            msg_date = raw_date

        messages.append(ChatMessage(date=msg_date, time=raw_time, sender=sender.strip(), text=body.strip()))
        _add_participant(participants, sender.strip())

    return _build_parsed_chat(messages, participants)


# ======================================================================
# EMAIL
# ======================================================================

def _header(text: str, name: str) -> Optional[str]:
    match = re.search(rf"^{name}:\s*(.+)$", text, re.MULTILINE)
    return match.group(1).strip() if match else None


def parse_email(text: str) -> ParsedChat:
    """A single email becomes a single message (subject prepended to the body)"""
    text = text.replace("\r\n", "\n")
    participants: List[str] = []

    from_header = _header(text, "From")
    to_header = _header(text, "To")
    date_header = _header(text, "Date")
    subject = _header(text, "Subject")

    body_match = re.search(r"\n\n(.+)$", text, re.DOTALL)
    body = body_match.group(1).strip() if body_match else text

    if from_header or to_header or date_header:
        sender = re.sub(r"[<>]", "", from_header).strip() if from_header else "Unknown"
        recipient = re.sub(r"[<>]", "", to_header).strip() if to_header else "Unknown"

        sent_at = None
        if date_header:
            try:
                sent_at = parsedate_to_datetime(date_header)
            except (TypeError, ValueError):
                logger.debug(f"Unparseable email date: {date_header!r}")
        sent_at = sent_at or datetime.now()

        full_text = f"Subject: {subject}\n\n{body}" if subject else body
        message = ChatMessage(
            date=sent_at.date().isoformat(),
            time=_format_time(sent_at),
            sender=sender,
            text=full_text,
        )
        _add_participant(participants, sender)
        if recipient != "Unknown":
            _add_participant(participants, recipient)
    else:
        now = datetime.now()
        message = ChatMessage(date=now.date().isoformat(), time=_format_time(now), sender="Unknown", text=body)

    return _build_parsed_chat([message], participants)


# ======================================================================
# MANUAL TEXT
# ======================================================================

# Most specific first; the bare "Sender: Message" form would swallow the others
MANUAL_PATTERNS = [
    # [Date] Sender: Message
    re.compile(r"^\[(?P<date>[^\]]+)\]\s*(?P<sender>[^:]+?):\s*(?P<text>.+)$"),
    # Date - Sender: Message
    re.compile(r"^(?P<date>\d{1,4}[/.-]\d{1,2}[/.-]\d{1,4}[^-]*?)\s+-\s+(?P<sender>[^:]+?):\s*(?P<text>.+)$"),
    # Sender (Date): Message
    re.compile(r"^(?P<sender>[^:(]+?)\s*\((?P<date>[^)]+)\):\s*(?P<text>.+)$"),
    # Sender: Message
    re.compile(r"^(?P<sender>[^:]+?):\s*(?P<text>.+)$"),
]

DATE_TOKEN = re.compile(r"\d{1,4}[/.-]\d{1,2}[/.-]\d{1,4}")

MANUAL_DATE_FORMATS = (
    "%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%d/%m/%Y",
    "%m/%d/%y", "%d/%m/%y", "%d-%m-%Y", "%d.%m.%Y",
)


def parse_loose_date(raw: str) -> Optional[str]:
    """Best-effort ISO date from a free-form date/time string"""
    token = DATE_TOKEN.search(raw or "")
    if not token:
        return None
    for fmt in MANUAL_DATE_FORMATS:
        try:
            return datetime.strptime(token.group(0), fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_manual_text(text: str) -> ParsedChat:
    """Free-form paste; undated lines inherit the last seen date (today by default)"""
    messages: List[ChatMessage] = []
    participants: List[str] = []
    current_date = _today()

    for line in _normalize_lines(text):
        match = None
        for pattern in MANUAL_PATTERNS:
            match = pattern.match(line)
            if match:
                break

        if match is None:
            if messages:
                messages[-1].text += "\n" + line.strip()
            continue

        groups = match.groupdict()
        if groups.get("date"):
            current_date = parse_loose_date(groups["date"]) or current_date

        sender = groups["sender"].strip()
        messages.append(ChatMessage(date=current_date, time="", sender=sender, text=groups["text"].strip()))
        _add_participant(participants, sender)

    return _build_parsed_chat(messages, participants)


# ======================================================================
# DETECTION + DISPATCH
# ======================================================================

def detect_platform(text: str) -> PlatformMetadata:
    """Guess the export format from content"""
    text = text or ""

    # Bracketed M/D/YY with a phone-number sender, before the looser WhatsApp bracket check
    if re.search(r"^\[\d{1,2}/\d{1,2}/\d{2}, \d{1,2}:\d{2}:\d{2} [AP]M\] \+?\d+:", text, re.MULTILINE):
        return PlatformMetadata(Platform.SMS_IOS, 0.85, "iOS Messages")

    if (
        re.search(r"\[\d{1,2}/\d{1,2}/\d{2,4}", text)
        or re.search(r"\d{1,2}/\d{1,2}/\d{2,4},.*-\s*.+?:\s*.+", text)
        or re.search(r"Messages and calls are end-to-end encrypted", text, re.IGNORECASE)
    ):
        return PlatformMetadata(Platform.WHATSAPP, 0.95, "WhatsApp Export")

    if re.search(r'^"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}","', text, re.MULTILINE):
        return PlatformMetadata(Platform.SMS_ANDROID, 0.9, "Android SMS Backup")

    if re.search(r"^\d{1,2}/\d{1,2}/\d{4} \d{1,2}:\d{2}:\d{2} [AP]M - \+?\d+", text, re.MULTILINE):
        return PlatformMetadata(Platform.SMS_ANDROID, 0.85, "Android SMS Text")

    if (
        re.search(r"^From:.*\n.*Date:.*\n.*Subject:", text, re.MULTILINE)
        or re.search(r"^From:.*\n.*To:.*\n.*Subject:", text, re.MULTILINE)
        or re.search(r"^Return-Path:.*\n.*Received:", text, re.MULTILINE)
        or re.search(r"^Message-ID:", text, re.MULTILINE)
    ):
        return PlatformMetadata(Platform.EMAIL, 0.9, "Email")

    if re.search(r"^Subject:.*\n.*From:.*\n.*Date:", text, re.MULTILINE):
        return PlatformMetadata(Platform.EMAIL, 0.75, "Email (Forwarded)")

    if re.search(r".+?:\s*.+", text) and len(text.split("\n")) > 3:
        return PlatformMetadata(Platform.MANUAL, 0.6, "Manual Text")

    return PlatformMetadata(Platform.UNKNOWN, 0.3, "Unknown Format")


def parse_universal_chat(
    text: str,
    platform: Optional[Union[Platform, str]] = None,
) -> Tuple[ParsedChat, PlatformMetadata]:
    """
    Parse any supported export.

    An explicit platform wins (confidence 1.0). Manual and unknown content
    is tried as WhatsApp first and falls back to the manual parser.
    """
    text = text or ""
    if platform:
        platform = Platform(platform)
        metadata = PlatformMetadata(platform, 1.0, platform.value)
    else:
        metadata = detect_platform(text)

    if metadata.platform == Platform.WHATSAPP:
        parsed = parse_whatsapp_chat(text)
    elif metadata.platform == Platform.SMS_ANDROID:
        if re.search(r'^"date","address"', text, re.MULTILINE) or ANDROID_CSV_ROW.search(text):
            parsed = parse_android_sms_csv(text)
        else:
            parsed = parse_android_sms_text(text)
    elif metadata.platform == Platform.SMS_IOS:
        parsed = parse_ios_messages(text)
    elif metadata.platform == Platform.EMAIL:
        parsed = parse_email(text)
    else:
        parsed = parse_whatsapp_chat(text)
        if parsed.total_messages:
            metadata.platform = Platform.WHATSAPP
            metadata.confidence = 0.5
        else:
            parsed = parse_manual_text(text)
            metadata.platform = Platform.MANUAL

    logger.info(
        f"💬 Parsed {parsed.total_messages} messages from {len(parsed.participants)} participants "
        f"(platform={metadata.platform.value}, confidence={metadata.confidence})"
    )
    return parsed, metadata


def extract_text_content(parsed: ParsedChat) -> str:
    """Scorer input: one "sender: text" line per non-media message"""
    return "\n".join(f"{m.sender}: {m.text}" for m in parsed.messages if not m.is_media)
