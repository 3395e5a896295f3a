"""Command-line administration of businesses, numbers and captured leads.

Examples:
    relay-admin add-business --name "Cars & Keys Sioux Falls" --e164 +16056100158 --tz America/Chicago
    relay-admin list-businesses
    relay-admin delete-business --e164 +16056100158
    relay-admin list-leads --limit 20
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from config.settings import get_settings
from db.base import engine, init_db
from db.repository import BusinessRepository, LeadRepository, default_business_profile

LOGGER = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="relay-admin", description="Manage call relay tenants and leads")
    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add-business", help="Create or update a business and link a number")
    add.add_argument("--name", required=True)
    add.add_argument("--e164", required=True, help="Twilio number in E.164 form, e.g. +14155551212")
    add.add_argument("--tz", default="America/Chicago")
    add.add_argument("--after-hours", type=float, default=40.0, help="After-hours surcharge")
    add.add_argument("--included", type=float, default=10.0, help="Included travel miles")
    add.add_argument("--per-mile", type=float, default=2.0)

    delete = commands.add_parser("delete-business", help="Delete a business with its numbers and leads")
    target = delete.add_mutually_exclusive_group(required=True)
    target.add_argument("--id", type=int, dest="business_id")
    target.add_argument("--e164")

    commands.add_parser("list-businesses", help="Show businesses and their numbers")

    leads = commands.add_parser("list-leads", help="Show the most recent leads")
    leads.add_argument("--limit", type=int, default=20)
    return parser


async def _add_business(args: argparse.Namespace) -> int:
    business = await BusinessRepository().upsert_business(
        name=args.name,
        e164=args.e164,
        timezone=args.tz,
        profile=default_business_profile(
            after_hours_surcharge=args.after_hours,
            included_miles=args.included,
            per_mile=args.per_mile,
            business_name=args.name,
        ),
    )
    numbers = ", ".join(number.e164 for number in business.phone_numbers)
    print(f"Business #{business.id} '{business.name}' ({business.timezone}) -> {numbers}")
    return 0


async def _delete_business(args: argparse.Namespace) -> int:
    deleted = await BusinessRepository().delete_business(business_id=args.business_id, e164=args.e164)
    if not deleted:
        print("No matching business found.", file=sys.stderr)
        return 1
    print("Business deleted.")
    return 0


async def _list_businesses(args: argparse.Namespace) -> int:
    businesses = await BusinessRepository().list_businesses()
    if not businesses:
        print("No businesses.")
    for business in businesses:
        numbers = ", ".join(number.e164 for number in business.phone_numbers) or "-"
        print(f"#{business.id} | {business.name} | {business.timezone} | {numbers}")
    return 0


async def _list_leads(args: argparse.Namespace) -> int:
    leads = await LeadRepository().list_recent(limit=args.limit)
    print(f"=== Recent leads (top {args.limit}) ===")
    for lead in leads:
        business = lead.business.name if lead.business else "Unknown"
        vehicle = " ".join(part for part in (lead.vehicle_year, lead.vehicle_make, lead.vehicle_model) if part)
        print(f"#{lead.id} | {business} | {lead.created_at.isoformat()}")
        print(f" type: {lead.outcome} | name: {lead.name or '-'} | phone: {lead.phone or '-'}")
        print(f" ymm: {vehicle or '-'} | svc: {lead.service_type or '-'} | zip: {lead.postal_code or '-'}")
        if lead.recording_url:
            print(f" recording: {lead.recording_url}")
        if lead.raw_line:
            print(f" raw: {lead.raw_line}")
        print("---")
    return 0


_COMMANDS = {
    "add-business": _add_business,
    "delete-business": _delete_business,
    "list-businesses": _list_businesses,
    "list-leads": _list_leads,
}


async def _amain(args: argparse.Namespace) -> int:
    await init_db()
    try:
        return await _COMMANDS[args.command](args)
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=get_settings().log_level)
    return asyncio.run(_amain(args))


if __name__ == "__main__":
    sys.exit(main())
