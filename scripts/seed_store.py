#!/usr/bin/env python3
"""Load profiles, provider configurations and prompt templates into the store.

Input is a JSON document with optional ``profiles``, ``providers`` and
``templates`` arrays. Rows without an ``id`` get a generated one.
"""

import argparse
import json
from pathlib import Path
from typing import Any
from uuid import uuid4

from grc_ai.config.settings import get_settings
from grc_ai.storage import create_store
from grc_ai.storage.base import Profile, PromptTemplate, ProviderConfig, Store


def load_seed(path: Path) -> dict[str, list[dict[str, Any]]]:
    parsed = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("seed file must contain a JSON object")
    seed: dict[str, list[dict[str, Any]]] = {}
    for key in ("profiles", "providers", "templates"):
        rows = parsed.get(key, [])
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise ValueError(f"'{key}' must be a list of objects")
        seed[key] = rows
    return seed


def provider_from_seed(row: dict[str, Any]) -> ProviderConfig:
    return ProviderConfig(
        id=str(row.get("id") or uuid4()),
        tenant_id=row.get("tenant_id"),
        name=str(row.get("name", "")),
        provider_type=str(row["provider_type"]).strip().lower(),
        endpoint_url=str(row["endpoint_url"]),
        model_name=str(row["model_name"]),
        api_key=str(row["api_key"]),
        temperature=row.get("temperature"),
        max_tokens=row.get("max_tokens"),
        is_active=bool(row.get("is_active", True)),
        priority=int(row.get("priority", 1)),
    )


def template_from_seed(row: dict[str, Any]) -> PromptTemplate:
    return PromptTemplate(
        id=str(row.get("id") or uuid4()),
        name=str(row["name"]),
        content=str(row["template_content"]),
        version=int(row.get("version", 1)),
        is_active=bool(row.get("is_active", True)),
        category=str(row.get("category", "")),
    )


def apply_seed(store: Store, seed: dict[str, list[dict[str, Any]]]) -> dict[str, int]:
    for row in seed["profiles"]:
        store.upsert_profile(
            Profile(
                user_id=str(row["id"]),
                tenant_id=row.get("tenant_id"),
                full_name=str(row.get("full_name", "")),
            )
        )
    for row in seed["providers"]:
        store.add_provider(provider_from_seed(row))
    for row in seed["templates"]:
        store.add_template(template_from_seed(row))
    return {key: len(rows) for key, rows in seed.items()}


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the GRC AI dispatcher store")
    parser.add_argument("seed_file", type=Path, help="JSON file with profiles/providers/templates")
    parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Create missing tables before loading",
    )
    args = parser.parse_args()

    store = create_store(get_settings())
    if args.init_schema:
        store.ensure_schema()
    counts = apply_seed(store, load_seed(args.seed_file))
    print(json.dumps({"backend": store.backend, "loaded": counts}, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
