from __future__ import annotations

from typing import Any


def display_name(identity: Any) -> str | None:
    if isinstance(identity, dict):
        name = identity.get("displayName") or identity.get("uniqueName")
        return str(name) if name else None
    if isinstance(identity, str) and identity:
        return identity
    return None


def link_href(item: dict[str, Any], rel: str) -> str | None:
    links = item.get("_links")
    if not isinstance(links, dict):
        return None
    target = links.get(rel)
    if isinstance(target, dict) and target.get("href"):
        return str(target["href"])
    return None


def as_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def listing(items: list[Any], *, message: str | None = None) -> dict[str, Any]:
    return {"success": True, "data": items, "count": len(items), "message": message}


def single(item: Any, *, message: str | None = None) -> dict[str, Any]:
    return {"success": True, "data": item, "message": message}
