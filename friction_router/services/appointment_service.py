"""
Appointment extraction - free text or an image into structured fields.

The model does the real work. When it is unavailable, misconfigured or
returns something unparseable, a small set of local heuristics produces a
best-effort answer instead. This endpoint feeds a convenience UI, so the
result is always delivered with HTTP 200 and an `error` explaining the
fallback.
"""
import base64
import binascii
import re
from datetime import date
from typing import Any, Dict, Optional, Tuple

from friction_router.core.exceptions import ConfigurationError, ProviderError, ValidationError
from friction_router.core.logging_config import get_logger
from friction_router.llm.client import ProviderDispatcher
from friction_router.llm.formatting import parse_json_response
from friction_router.llm.prompts import build_appointment_prompt
from friction_router.models.auxiliary import AppointmentFields, AppointmentRequest, AppointmentResponse

logger = get_logger(__name__)

MAX_TEXT_CHARS = 8000
FIELD_NAMES = set(AppointmentFields.model_fields)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,", re.IGNORECASE)

MONTHS = {
    name: index
    for index, names in enumerate(
        [("jan", "january"), ("feb", "february"), ("mar", "march"), ("apr", "april"),
         ("may",), ("jun", "june"), ("jul", "july"), ("aug", "august"),
         ("sep", "sept", "september"), ("oct", "october"), ("nov", "november"), ("dec", "december")],
        start=1,
    )
    for name in names
}
_MONTH_ALT = "|".join(sorted(MONTHS, key=len, reverse=True))

ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
# Day-first numeric dates (en-AU convention).
NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})[/.](\d{1,2})[/.](\d{2,4})\b")
DAY_MONTH_RE = re.compile(rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+({_MONTH_ALT})\.?,?\s+(\d{{4}})\b", re.IGNORECASE)
MONTH_DAY_RE = re.compile(rf"\b({_MONTH_ALT})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b", re.IGNORECASE)
TIME_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\.?\b|\b(\d{1,2}):(\d{2})\b", re.IGNORECASE)
PHONE_RE = re.compile(r"(?<![\w])(\+?\(?\d[\d\s().-]{6,}\d)(?![\w])")
ADDRESS_RE = re.compile(
    r"\b\d+[A-Za-z]?\s+[\w' .-]+?\s(?:St|Street|Rd|Road|Ave|Avenue|Blvd|Boulevard|Dr|Drive|"
    r"Ln|Lane|Pde|Parade|Hwy|Highway|Pl|Place|Tce|Terrace|Way|Cres|Crescent)\b[^\n]*",
    re.IGNORECASE,
)


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    if year < 100:
        year += 2000
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _find_date(text: str) -> Optional[str]:
    match = ISO_DATE_RE.search(text)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    match = DAY_MONTH_RE.search(text)
    if match:
        return _safe_date(int(match.group(3)), MONTHS[match.group(2).lower()], int(match.group(1)))
    match = MONTH_DAY_RE.search(text)
    if match:
        return _safe_date(int(match.group(3)), MONTHS[match.group(1).lower()], int(match.group(2)))
    match = NUMERIC_DATE_RE.search(text)
    if match:
        return _safe_date(int(match.group(3)), int(match.group(2)), int(match.group(1)))
    return None


def _find_time(text: str) -> Optional[str]:
    for match in TIME_RE.finditer(text):
        if match.group(3):
            hour, minute = int(match.group(1)), int(match.group(2) or 0)
            if not 1 <= hour <= 12:
                continue
            if match.group(3).lower() == "p" and hour != 12:
                hour += 12
            elif match.group(3).lower() == "a" and hour == 12:
                hour = 0
        else:
            hour, minute = int(match.group(4)), int(match.group(5))
        if hour < 24 and minute < 60:
            return f"{hour:02d}:{minute:02d}"
    return None


def extract_with_heuristics(text: str) -> AppointmentFields:
    """
    Regex-based fallback extraction.

    Finds the first date, time, phone number and street address, and uses
    the first non-empty line as the title.
    """
    fields: Dict[str, Any] = {}
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines:
        fields["title"] = lines[0][:80]

    found_date = _find_date(text)
    if found_date:
        fields["date"] = found_date
    found_time = _find_time(text)
    if found_time:
        fields["time"] = found_time

    phone = PHONE_RE.search(text)
    if phone and sum(ch.isdigit() for ch in phone.group(1)) >= 8:
        fields["phone"] = phone.group(1).strip()

    address = ADDRESS_RE.search(text)
    if address:
        fields["address"] = address.group(0).strip().rstrip(",.")

    return AppointmentFields(**fields)


def decode_image(image: str, mime_type: Optional[str]) -> Tuple[bytes, str]:
    """
    Decode a base64 image, accepting an optional data: URL prefix.

    Raises:
        ValidationError: If the payload is not valid base64
    """
    match = _DATA_URL_RE.match(image)
    if match:
        mime_type = mime_type or match.group("mime")
        image = image[match.end():]
    try:
        data = base64.b64decode(image, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Image must be base64 encoded", field="image") from e
    if not data:
        raise ValidationError("Image is empty", field="image")
    return data, (mime_type or "image/jpeg")


def _coerce_fields(parsed: Dict[str, Any]) -> AppointmentFields:
    raw = parsed.get("fields") if isinstance(parsed.get("fields"), dict) else parsed
    clean = {
        name: str(value).strip()
        for name, value in raw.items()
        if name in FIELD_NAMES and value not in (None, "") and not isinstance(value, (dict, list))
    }
    return AppointmentFields(**clean)


class AppointmentService:
    """Extracts appointment details, preferring the model over heuristics."""

    def __init__(self, dispatcher: ProviderDispatcher):
        self.dispatcher = dispatcher

    def extract(self, request: AppointmentRequest) -> AppointmentResponse:
        """
        Raises:
            ValidationError: Neither text nor a decodable image was supplied
        """
        text = (request.text or "").strip()[:MAX_TEXT_CHARS]
        image: Optional[Tuple[bytes, str]] = None
        if request.image:
            image = decode_image(request.image.strip(), request.mimeType)
        if not text and image is None:
            raise ValidationError("Invalid request. Expected { text } or { image }", field="text")

        try:
            raw = self.dispatcher.generate_structured(
                build_appointment_prompt(text),
                image_bytes=image[0] if image else None,
                mime_type=image[1] if image else None,
            )
            parsed = parse_json_response(raw)
            if parsed is None:
                raise ProviderError("gemini", "Unable to parse AI response")
            confidence = parsed.get("confidence")
            return AppointmentResponse(
                fields=_coerce_fields(parsed),
                confidence=confidence if isinstance(confidence, dict) else None,
                source="ai",
            )
        except (ProviderError, ConfigurationError) as e:
            logger.warning(f"Appointment extraction fell back to heuristics: {e.message}")
            fields = extract_with_heuristics(text) if text else AppointmentFields()
            return AppointmentResponse(fields=fields, source="heuristic", error=e.message)
