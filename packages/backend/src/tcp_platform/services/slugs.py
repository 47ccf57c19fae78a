"""Slug generation for companies, projects and agents."""

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


def generate_slug(name: str) -> str:
    """Lowercase, runs of anything non-alphanumeric become one hyphen."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:50].strip("-")


async def ensure_unique_slug(db: AsyncSession, model, base_slug: str, *scope) -> str:
    """Append -1, -2, ... until no row of `model` (within `scope`) uses the slug."""
    base_slug = base_slug or "default"
    slug = base_slug
    counter = 1
    while True:
        result = await db.execute(
            select(model.id).where(model.slug == slug, *scope).limit(1)
        )
        if result.first() is None:
            return slug
        slug = f"{base_slug}-{counter}"
        counter += 1
