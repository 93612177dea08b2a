#!/usr/bin/env python3
"""
Collect every unique program name offered across all portal institutions.

Walks the institution directory, fetches the program rows of each HEI and
prints a JSON summary with the deduplicated catalog. Feeding the catalog
into the registry database is left to the registry's own import tooling.
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional
import sys

from shared.config import PortalSettings
from shared.logging import configure_logging, get_logger
from service_portal.app.adapters.portal_gateway import PortalGateway
from service_portal.app.caching.cache_store import CacheStore, create_cache_store
from service_portal.app.domain.records import unique_texts


class NoInstitutionsError(Exception):
    """Raised when the portal returns no institutions at all."""


async def collect_catalog(gateway: PortalGateway, *, refresh: bool = False, echo=print) -> Dict[str, Any]:
    """Gather unique program names across all institutions."""
    logger = get_logger("portal.catalog_sync")

    if refresh:
        await _forget(logger, "institutions", gateway.forget_institutions)

    institutions = await gateway.fetch_all_institutions()
    if not institutions:
        raise NoInstitutionsError("No HEIs returned from the portal. Check PORTAL_API or connectivity.")

    total = len(institutions)
    echo(f"Found {total} HEIs.")

    names = []
    per_institution: Dict[str, int] = {}
    for index, hei in enumerate(institutions, start=1):
        echo(f"[{index}/{total}] {hei.inst_code} - {hei.inst_name}")

        if refresh:
            await _forget(logger, "program_records", gateway.forget_program_records, hei.inst_code)

        records = await gateway.fetch_program_records(hei.inst_code)
        programs = unique_texts(record.program_name for record in records)
        if not records:
            logger.warning("No program rows for institution", inst_code=hei.inst_code)

        per_institution[hei.inst_code] = len(programs)
        names.extend(programs)

    catalog = unique_texts(names)
    echo(f"Total unique program names found: {len(catalog)}")

    return {
        "institutions": total,
        "programs_per_institution": per_institution,
        "catalog": catalog,
    }


async def _forget(logger, shape: str, forget, *args) -> None:
    """Clear one cached shape, logging store errors instead of raising."""
    try:
        await forget(*args)
    except Exception as exc:
        logger.error("Cache invalidation failed", shape=shape, args=list(args), error=str(exc))


async def sync(settings: PortalSettings, *, cache: Optional[CacheStore] = None, refresh: bool = False) -> Dict[str, Any]:
    """Build a gateway for ``settings`` and collect the catalog."""
    store = cache or create_cache_store(settings)
    try:
        return await collect_catalog(PortalGateway(settings, store), refresh=refresh)
    finally:
        await store.close()


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Collect unique program names from the portal.")
    parser.add_argument("--memory-cache", action="store_true", help="Use an in-process cache instead of Redis")
    parser.add_argument("--refresh", action="store_true", help="Clear cached institution and program rows first")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write the JSON summary")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    settings = PortalSettings(cache_backend="memory") if args.memory_cache else PortalSettings()
    configure_logging("portal", settings.log_level)

    try:
        summary = asyncio.run(sync(settings, refresh=args.refresh))
    except KeyboardInterrupt:
        return 130
    except NoInstitutionsError as exc:
        print(f"[catalog-sync] {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
