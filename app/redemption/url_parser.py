"""Parsing and validation of inbound redemption links.

Accepted inputs are a full URL, a path with a query (``/redeem?...``), a bare
query (``?...`` or ``campaign_id=...&code=...``) and a host without a scheme
(``example.com/redeem?...``). Every shape is resolved against a synthetic base
before the query is read, so one code path handles them all.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from urllib.parse import parse_qsl, urlencode, urlsplit

from app.redemption.errors import RedemptionErrorKind

SYNTHETIC_BASE_URL = "https://redeem.invalid"
CAMPAIGN_ID_PARAM = "campaign_id"
CODE_PARAM = "code"
CODE_MIN_LENGTH = 4
CODE_MAX_LENGTH = 32
SANITIZED_PARAM_MAX_LENGTH = 100
REDEMPTION_PATHS = ("/redeem", "/claim", "/activate", "/use")
MISNAMED_PARAMS = {
    "campaign": CAMPAIGN_ID_PARAM,
    "unique_code": CODE_PARAM,
}
_UNSAFE_PARAM_CHARS = re.compile(r"[<>'\"]")


@dataclass(frozen=True, slots=True)
class UrlParserConfig:
    required_params: tuple[str, ...] = (CAMPAIGN_ID_PARAM, CODE_PARAM)
    campaign_id_pattern: re.Pattern[str] = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")
    code_pattern: re.Pattern[str] = re.compile(r"^[A-Z0-9]{4,32}$")
    allow_extra_params: bool = True

    def with_overrides(
        self,
        *,
        required_params: tuple[str, ...] | None = None,
        campaign_id_pattern: re.Pattern[str] | str | None = None,
        code_pattern: re.Pattern[str] | str | None = None,
        allow_extra_params: bool | None = None,
    ) -> UrlParserConfig:
        if isinstance(campaign_id_pattern, str):
            campaign_id_pattern = re.compile(campaign_id_pattern)
        if isinstance(code_pattern, str):
            code_pattern = re.compile(code_pattern)
        return replace(
            self,
            required_params=(
                self.required_params if required_params is None else tuple(required_params)
            ),
            campaign_id_pattern=(
                self.campaign_id_pattern if campaign_id_pattern is None else campaign_id_pattern
            ),
            code_pattern=self.code_pattern if code_pattern is None else code_pattern,
            allow_extra_params=(
                self.allow_extra_params if allow_extra_params is None else allow_extra_params
            ),
        )


DEFAULT_URL_PARSER_CONFIG = UrlParserConfig()


@dataclass(slots=True)
class CampaignUrlData:
    campaign_id: str
    unique_code: str
    original_url: str
    is_valid: bool
    extra_params: dict[str, str] | None = None
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UrlValidationResult:
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    error_kinds: list[RedemptionErrorKind]
    data: CampaignUrlData | None = None


@dataclass(slots=True)
class _Inspection:
    campaign_id: str = ""
    unique_code: str = ""
    params: dict[str, str] = field(default_factory=dict)
    extra_params: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error_kinds: list[RedemptionErrorKind] = field(default_factory=list)

    def fail(self, kind: RedemptionErrorKind, message: str) -> None:
        self.errors.append(message)
        if kind not in self.error_kinds:
            self.error_kinds.append(kind)


def _looks_like_bare_query(value: str) -> bool:
    head, sep, _ = value.partition("=")
    return bool(sep) and not any(char in head for char in "/?.#")


def normalize_url(url: str) -> str:
    value = url.strip()
    if value.startswith("?") or value.startswith("/"):
        return f"{SYNTHETIC_BASE_URL}{value}"
    if "://" in value:
        return value
    if not value:
        return f"{SYNTHETIC_BASE_URL}/"
    if _looks_like_bare_query(value):
        return f"{SYNTHETIC_BASE_URL}/?{value}"
    return f"https://{value}"


def _read_query(url: str) -> tuple[str, dict[str, str]]:
    parts = urlsplit(normalize_url(url))
    # urlsplit defers netloc validation until hostname/port are read
    _ = parts.hostname
    _ = parts.port
    params: dict[str, str] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        params.setdefault(key, value)
    return parts.path, params


def _inspect(url: str, config: UrlParserConfig) -> _Inspection:
    inspection = _Inspection()
    if not isinstance(url, str):
        inspection.fail(RedemptionErrorKind.URL_PARSE_FAILURE, "URL parsing error: input is not a string")
        return inspection
    try:
        _, params = _read_query(url)
    except ValueError as exc:
        inspection.fail(RedemptionErrorKind.URL_PARSE_FAILURE, f"URL parsing error: {exc}")
        return inspection

    inspection.params = params
    campaign_id = params.get(CAMPAIGN_ID_PARAM, "").strip()
    unique_code = params.get(CODE_PARAM, "").strip()
    inspection.campaign_id = campaign_id
    inspection.unique_code = unique_code

    if not campaign_id:
        inspection.fail(
            RedemptionErrorKind.INVALID_ARGUMENT,
            f"Missing required parameter: {CAMPAIGN_ID_PARAM}",
        )
    elif not config.campaign_id_pattern.match(campaign_id):
        inspection.fail(
            RedemptionErrorKind.CAMPAIGN_ID_FORMAT_INVALID,
            f"Invalid campaign_id format: {campaign_id}",
        )

    if not unique_code:
        inspection.fail(RedemptionErrorKind.INVALID_ARGUMENT, f"Missing required parameter: {CODE_PARAM}")
    elif not config.code_pattern.match(unique_code):
        inspection.fail(RedemptionErrorKind.CODE_FORMAT_INVALID, f"Invalid code format: {unique_code}")
        if len(unique_code) < CODE_MIN_LENGTH:
            inspection.errors.append(f"Code must be at least {CODE_MIN_LENGTH} characters long")
        if len(unique_code) > CODE_MAX_LENGTH:
            inspection.errors.append(f"Code must be at most {CODE_MAX_LENGTH} characters long")

    for key in config.required_params:
        if key in (CAMPAIGN_ID_PARAM, CODE_PARAM):
            continue
        if not params.get(key, "").strip():
            inspection.fail(RedemptionErrorKind.INVALID_ARGUMENT, f"Missing required parameter: {key}")

    extras = {
        key: value
        for key, value in params.items()
        if key not in config.required_params and key not in (CAMPAIGN_ID_PARAM, CODE_PARAM)
    }
    if extras and not config.allow_extra_params:
        inspection.warnings.append(f"Found {len(extras)} additional parameters")
    elif extras:
        inspection.extra_params = extras

    for misnamed, expected in MISNAMED_PARAMS.items():
        if misnamed in params and expected not in params:
            inspection.warnings.append(
                f'Found "{misnamed}" parameter, did you mean "{expected}"?'
            )
    return inspection


def parse_campaign_url(url: str, config: UrlParserConfig | None = None) -> CampaignUrlData:
    inspection = _inspect(url, config or DEFAULT_URL_PARSER_CONFIG)
    return CampaignUrlData(
        campaign_id=inspection.campaign_id,
        unique_code=inspection.unique_code,
        original_url=url if isinstance(url, str) else "",
        is_valid=not inspection.errors,
        extra_params=inspection.extra_params or None,
        errors=list(inspection.errors),
    )


def validate_campaign_url(
    url: str,
    config: UrlParserConfig | None = None,
) -> UrlValidationResult:
    resolved = config or DEFAULT_URL_PARSER_CONFIG
    inspection = _inspect(url, resolved)
    is_valid = not inspection.errors
    return UrlValidationResult(
        is_valid=is_valid,
        errors=inspection.errors,
        warnings=inspection.warnings,
        error_kinds=inspection.error_kinds,
        data=parse_campaign_url(url, resolved) if is_valid else None,
    )


def build_campaign_url(
    *,
    campaign_id: str | None = None,
    unique_code: str | None = None,
    extra_params: Mapping[str, str] | None = None,
    base_path: str = "/redeem",
) -> str:
    params: dict[str, str] = {}
    if campaign_id:
        params[CAMPAIGN_ID_PARAM] = campaign_id
    if unique_code:
        params[CODE_PARAM] = unique_code
    for key, value in (extra_params or {}).items():
        params[key] = value

    query = urlencode(params)
    return f"{base_path}?{query}" if query else base_path


def is_redemption_url(url: str) -> bool:
    if not isinstance(url, str):
        return False
    try:
        path, params = _read_query(url)
    except ValueError:
        return False
    lowered = path.lower()
    if any(candidate in lowered for candidate in REDEMPTION_PATHS):
        return True
    return any(key in params for key in (CAMPAIGN_ID_PARAM, CODE_PARAM, "campaign"))


def sanitize_url_param(value: str) -> str:
    return _UNSAFE_PARAM_CHARS.sub("", value.strip())[:SANITIZED_PARAM_MAX_LENGTH]
