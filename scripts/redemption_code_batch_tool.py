from __future__ import annotations

import argparse
import asyncio
import csv
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from app.core.clock import utc_now
from app.core.config import get_settings
from app.db.models.redemption_codes import RedemptionCode
from app.db.repo.campaigns_repo import CampaignsRepo
from app.db.repo.redemption_codes_repo import RedemptionCodesRepo
from app.db.session import SessionLocal
from app.redemption.codes import (
    CodeGenerationConfig,
    CodePreset,
    generate_bulk_codes,
    resolve_code_config,
    validate_code_format,
    verify_uniqueness,
)
from app.redemption.service import RedemptionService
from app.redemption.types import RedemptionFailure
from app.redemption.url_parser import build_campaign_url

MAX_REPORTED_PROBLEMS = 10


@dataclass(slots=True)
class BatchCode:
    unique_code: str
    code_id: str | None = None


def _load_codes_from_file(path: Path) -> list[str]:
    with path.open("r", encoding="utf-8", newline="") as file:
        reader = csv.DictReader(file)
        if "unique_code" in (reader.fieldnames or []):
            return [
                (row.get("unique_code") or "").strip()
                for row in reader
                if (row.get("unique_code") or "").strip()
            ]

    with path.open("r", encoding="utf-8", newline="") as file:
        return [line.strip() for line in file if line.strip()]


def _check_imported_codes(codes: Sequence[str], config: CodeGenerationConfig) -> None:
    if not codes:
        raise ValueError("no redemption codes to process")

    problems: list[str] = []
    for code in codes:
        validation = validate_code_format(code, config)
        if not validation.is_valid:
            problems.append(f"{code}: {'; '.join(validation.errors)}")
    if problems:
        shown = "\n".join(problems[:MAX_REPORTED_PROBLEMS])
        raise ValueError(f"{len(problems)} codes do not match the expected format:\n{shown}")

    report = verify_uniqueness(codes)
    if not report.is_unique:
        raise ValueError(f"duplicate codes in batch: {', '.join(report.duplicates[:MAX_REPORTED_PROBLEMS])}")


def _build_config(args: argparse.Namespace) -> CodeGenerationConfig:
    config = resolve_code_config(args.preset)
    if args.length is not None:
        config = config.with_overrides(length=args.length)
    return config


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Redemption code batch generation/import tool")
    parser.add_argument("--campaign-id", required=True)
    parser.add_argument("--preset", choices=[preset.value for preset in CodePreset], default="STANDARD")
    parser.add_argument("--length", type=int, help="override the preset token length")
    parser.add_argument("--count", type=int)
    parser.add_argument("--import-file", type=Path, help="CSV with a unique_code column or one code per line")
    parser.add_argument("--base-url", help="redeem link base, defaults to REDEEM_BASE_URL")
    parser.add_argument("--output-csv", type=Path)
    parser.add_argument("--dry-run", action="store_true")
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace) -> None:
    if args.import_file and args.count:
        raise ValueError("use either --import-file or --count")
    if not args.import_file and not args.count:
        raise ValueError("one of --import-file or --count is required")
    if args.count is not None and args.count <= 0:
        raise ValueError("--count must be positive")
    if args.length is not None and args.length <= 0:
        raise ValueError("--length must be positive")


async def _generate(args: argparse.Namespace, config: CodeGenerationConfig) -> list[BatchCode]:
    if args.dry_run:
        result = generate_bulk_codes(args.count, config)
        return [BatchCode(unique_code=code) for code in result.codes]

    async with SessionLocal.begin() as session:
        created = await RedemptionService.create_codes(
            session,
            campaign_id=args.campaign_id,
            quantity=args.count,
            config=config,
        )
    if isinstance(created, RedemptionFailure):
        raise ValueError(f"{created.message}: {args.campaign_id}")
    return [BatchCode(unique_code=code.unique_code, code_id=code.id) for code in created.codes]


async def _import(args: argparse.Namespace, config: CodeGenerationConfig) -> list[BatchCode]:
    codes = _load_codes_from_file(args.import_file)
    _check_imported_codes(codes, config)
    batch = [BatchCode(unique_code=code) for code in codes]
    if args.dry_run:
        return batch

    now_utc = utc_now()
    async with SessionLocal.begin() as session:
        campaign = await CampaignsRepo.get_by_id(session, args.campaign_id)
        if campaign is None:
            raise ValueError(f"campaign not found: {args.campaign_id}")

        stored = await RedemptionCodesRepo.find_existing_codes(session, codes)
        if stored:
            raise ValueError(f"codes already exist: {', '.join(sorted(stored)[:MAX_REPORTED_PROBLEMS])}")

        rows = await RedemptionCodesRepo.create_batch(
            session,
            codes=[
                RedemptionCode(
                    campaign_id=campaign.id,
                    unique_code=item.unique_code,
                    is_used=False,
                    redemption_value=campaign.redemption_value,
                    expires_at=campaign.expires_at,
                    created_at=now_utc,
                    updated_at=now_utc,
                )
                for item in batch
            ],
        )
        for item, row in zip(batch, rows):
            item.code_id = row.id
    return batch


def _write_output(path: Path, batch: Sequence[BatchCode], *, campaign_id: str, base_url: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    redeem_base = f"{base_url.rstrip('/')}/redeem"
    with path.open("w", encoding="utf-8", newline="") as file:
        writer = csv.writer(file)
        writer.writerow(["unique_code", "code_id", "redeem_url"])
        for item in batch:
            writer.writerow(
                [
                    item.unique_code,
                    item.code_id or "",
                    build_campaign_url(
                        campaign_id=campaign_id,
                        unique_code=item.unique_code,
                        base_path=redeem_base,
                    ),
                ]
            )


async def _run(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    _validate_args(args)
    config = _build_config(args)

    batch = await (_import(args, config) if args.import_file else _generate(args, config))

    output_csv = args.output_csv or Path("reports/redemption_code_batch_output.csv")
    _write_output(
        output_csv,
        batch,
        campaign_id=args.campaign_id,
        base_url=args.base_url or get_settings().redeem_base_url,
    )
    print(  # noqa: T201
        f"processed={len(batch)} inserted={0 if args.dry_run else len(batch)} output={output_csv}"
    )
    return 0


def main() -> int:
    return asyncio.run(_run())


if __name__ == "__main__":
    raise SystemExit(main())
