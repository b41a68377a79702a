from __future__ import annotations

import secrets
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from app.redemption.errors import GenerationExhaustedError, InvalidArgumentError

SAFE_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
SAFE_LETTERS = "ABCDEFGHJKMNPQRSTUVWXYZ"
FULL_ALPHANUMERIC = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
FULL_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"

DEFAULT_CODE_LENGTH = 8
MAX_BULK_GENERATION = 100_000
DRAWS_PER_CODE = 100


@dataclass(frozen=True, slots=True)
class CodeGenerationConfig:
    length: int = DEFAULT_CODE_LENGTH
    alphabet: str = SAFE_ALPHABET
    prefix: str = ""
    separator: str = ""
    suffix: str = ""

    def __post_init__(self) -> None:
        if self.length <= 0:
            raise InvalidArgumentError("length must be positive")
        if not self.alphabet:
            raise InvalidArgumentError("alphabet must not be empty")
        if len(set(self.alphabet)) != len(self.alphabet):
            raise InvalidArgumentError("alphabet must not contain repeated characters")

    @classmethod
    def from_options(
        cls,
        *,
        length: int = DEFAULT_CODE_LENGTH,
        alphabet: str | None = None,
        prefix: str = "",
        separator: str = "",
        suffix: str = "",
        uppercase: bool = True,
        include_numbers: bool = True,
        exclude_ambiguous: bool = True,
    ) -> CodeGenerationConfig:
        if alphabet is None:
            if exclude_ambiguous:
                alphabet = SAFE_ALPHABET if include_numbers else SAFE_LETTERS
            else:
                alphabet = FULL_ALPHANUMERIC if include_numbers else FULL_LETTERS
            if not uppercase:
                alphabet = alphabet.lower()
        return cls(
            length=length,
            alphabet=alphabet,
            prefix=prefix,
            separator=separator,
            suffix=suffix,
        )

    def with_overrides(
        self,
        *,
        length: int | None = None,
        alphabet: str | None = None,
        prefix: str | None = None,
        separator: str | None = None,
        suffix: str | None = None,
    ) -> CodeGenerationConfig:
        return replace(
            self,
            length=self.length if length is None else length,
            alphabet=self.alphabet if alphabet is None else alphabet,
            prefix=self.prefix if prefix is None else prefix,
            separator=self.separator if separator is None else separator,
            suffix=self.suffix if suffix is None else suffix,
        )

    @property
    def code_prefix(self) -> str:
        return f"{self.prefix}{self.separator}" if self.prefix else ""

    @property
    def total_length(self) -> int:
        return len(self.code_prefix) + self.length + len(self.suffix)

    @property
    def keyspace_size(self) -> int:
        return len(self.alphabet) ** self.length


class CodePreset(str, Enum):
    STANDARD = "STANDARD"
    SHORT = "SHORT"
    SECURE = "SECURE"
    LETTERS_ONLY = "LETTERS_ONLY"
    CAMPAIGN = "CAMPAIGN"


CODE_PRESETS: dict[CodePreset, CodeGenerationConfig] = {
    CodePreset.STANDARD: CodeGenerationConfig(length=8),
    CodePreset.SHORT: CodeGenerationConfig(length=6),
    CodePreset.SECURE: CodeGenerationConfig(length=12),
    CodePreset.LETTERS_ONLY: CodeGenerationConfig(length=8, alphabet=SAFE_LETTERS),
    CodePreset.CAMPAIGN: CodeGenerationConfig(length=6, prefix="H2", separator="-"),
}

# presets whose codes satisfy the redemption link grammar (^[A-Z0-9]{4,32}$)
URL_SAFE_PRESETS = frozenset(
    {CodePreset.STANDARD, CodePreset.SHORT, CodePreset.SECURE, CodePreset.LETTERS_ONLY}
)


@dataclass(slots=True)
class GenerationMetadata:
    alphabet: str
    length: int
    prefix: str
    separator: str
    suffix: str
    generated_at: datetime
    attempts: int
    uniqueness_verified: bool


@dataclass(slots=True)
class BulkGenerationResult:
    codes: list[str]
    requested: int
    generated: int
    metadata: GenerationMetadata


@dataclass(slots=True)
class UniquenessReport:
    is_unique: bool
    unique_count: int
    duplicates: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CodeFormat:
    length: int
    has_prefix: bool
    has_suffix: bool
    alphabet: str


@dataclass(slots=True)
class CodeValidationResult:
    is_valid: bool
    errors: list[str]
    format: CodeFormat


def resolve_code_config(
    value: CodePreset | str | CodeGenerationConfig | None = None,
) -> CodeGenerationConfig:
    if value is None:
        return CODE_PRESETS[CodePreset.STANDARD]
    if isinstance(value, CodeGenerationConfig):
        return value
    try:
        preset = CodePreset(value)
    except ValueError as exc:
        raise InvalidArgumentError(f"unknown code preset: {value}") from exc
    return CODE_PRESETS[preset]


def _draw_token(config: CodeGenerationConfig) -> str:
    return "".join(secrets.choice(config.alphabet) for _ in range(config.length))


def generate_redemption_code(config: CodeGenerationConfig | None = None) -> str:
    resolved = resolve_code_config(config)
    return f"{resolved.code_prefix}{_draw_token(resolved)}{resolved.suffix}"


def generate_bulk_codes(
    count: int,
    config: CodePreset | str | CodeGenerationConfig | None = None,
    *,
    existing_codes: Iterable[str] | None = None,
) -> BulkGenerationResult:
    if count <= 0:
        raise InvalidArgumentError("count must be positive")
    if count > MAX_BULK_GENERATION:
        raise InvalidArgumentError(f"count must not exceed {MAX_BULK_GENERATION}")

    resolved = resolve_code_config(config)
    blocked = set(existing_codes) if existing_codes is not None else set()
    if count > resolved.keyspace_size:
        raise GenerationExhaustedError(
            f"requested {count} codes but the keyspace only holds {resolved.keyspace_size}"
        )

    accepted: set[str] = set()
    codes: list[str] = []
    max_attempts = count * DRAWS_PER_CODE
    attempts = 0

    while len(codes) < count:
        if attempts >= max_attempts:
            raise GenerationExhaustedError(
                f"generated {len(codes)} of {count} unique codes in {attempts} draws"
            )
        attempts += 1

        code = generate_redemption_code(resolved)
        if code in accepted or code in blocked:
            continue

        accepted.add(code)
        codes.append(code)

    return BulkGenerationResult(
        codes=codes,
        requested=count,
        generated=len(codes),
        metadata=GenerationMetadata(
            alphabet=resolved.alphabet,
            length=resolved.length,
            prefix=resolved.prefix,
            separator=resolved.separator,
            suffix=resolved.suffix,
            generated_at=datetime.now(timezone.utc),
            attempts=attempts,
            uniqueness_verified=True,
        ),
    )


def verify_uniqueness(codes: Sequence[str]) -> UniquenessReport:
    frequencies = Counter(codes)
    duplicates = [code for code, seen in frequencies.items() if seen > 1]
    return UniquenessReport(
        is_unique=not duplicates,
        unique_count=len(frequencies),
        duplicates=duplicates,
    )


def validate_code_format(
    code: object,
    config: CodePreset | str | CodeGenerationConfig | None = None,
) -> CodeValidationResult:
    resolved = resolve_code_config(config)
    if not isinstance(code, str) or not code:
        return CodeValidationResult(
            is_valid=False,
            errors=["Code must be a non-empty string"],
            format=CodeFormat(length=0, has_prefix=False, has_suffix=False, alphabet=""),
        )

    errors: list[str] = []
    if len(code) != resolved.total_length:
        errors.append(f"Code length must be {resolved.total_length} characters, got {len(code)}")

    token = code
    if resolved.code_prefix:
        if code.startswith(resolved.code_prefix):
            token = token[len(resolved.code_prefix) :]
        else:
            errors.append(f'Code must start with prefix "{resolved.code_prefix}"')
    if resolved.suffix:
        if token.endswith(resolved.suffix):
            token = token[: -len(resolved.suffix)]
        else:
            errors.append(f'Code must end with suffix "{resolved.suffix}"')

    allowed = set(resolved.alphabet)
    for char in token:
        if char not in allowed:
            errors.append(f'Invalid character "{char}" found in code')
            break

    return CodeValidationResult(
        is_valid=not errors,
        errors=errors,
        format=CodeFormat(
            length=len(code),
            has_prefix=bool(resolved.code_prefix),
            has_suffix=bool(resolved.suffix),
            alphabet=resolved.alphabet,
        ),
    )
