"""Picker item search: local fetchers, eligibility filtering and debounced single-flight search."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping

from claimdesk_api.domain.claims import ItemKind, PickerItem, make_item_ref

from .grants import EligibilityList

ItemFetcher = Callable[[str], Awaitable[list[PickerItem]]]


class PickerKind(str, Enum):
    SCOPE_PRODUCTS = "scope-products"
    SCOPE_BUNDLES = "scope-bundles"
    GRANT_PRODUCTS = "grant-products"
    GRANT_BUNDLES = "grant-bundles"

    @property
    def item_kind(self) -> ItemKind:
        if self in (PickerKind.SCOPE_PRODUCTS, PickerKind.GRANT_PRODUCTS):
            return ItemKind.PRODUCT
        return ItemKind.BUNDLE

    @property
    def is_grant(self) -> bool:
        return self in (PickerKind.GRANT_PRODUCTS, PickerKind.GRANT_BUNDLES)


def dedupe_items(items: Iterable[PickerItem]) -> list[PickerItem]:
    # First position wins, last value wins.
    by_id: dict[str, PickerItem] = {}
    for item in items:
        if item.id:
            by_id[item.id] = item
    return list(by_id.values())


def make_local_fetcher(items: Iterable[PickerItem]) -> ItemFetcher:
    """Fetcher over a fixed list, matching title or subtitle case-insensitively."""

    base = dedupe_items(items)

    async def fetch(query: str) -> list[PickerItem]:
        needle = (query or "").strip().lower()
        if not needle:
            return list(base)
        return [
            item
            for item in base
            if needle in item.title.lower() or (item.subtitle and needle in item.subtitle.lower())
        ]

    return fetch


def filter_eligible(fetcher: ItemFetcher, eligibility: EligibilityList, kind: ItemKind) -> ItemFetcher:
    """Wrap a grant fetcher so it only surfaces items the offer allows."""

    async def fetch(query: str) -> list[PickerItem]:
        items = await fetcher(query)
        return [item for item in items if item.id and eligibility.allows(make_item_ref(kind, item.id))]

    return fetch


async def _no_items(query: str) -> list[PickerItem]:
    return []


def _snapshot_item(entry: Mapping[str, Any], kind: ItemKind, *, with_default_qty: bool) -> PickerItem | None:
    nested = entry.get("product" if kind is ItemKind.PRODUCT else "bundle")
    if not isinstance(nested, Mapping) or not nested.get("id"):
        return None
    fallback_title = "Product" if kind is ItemKind.PRODUCT else "Bundle"
    title_key = "name" if kind is ItemKind.PRODUCT else "title"
    default_qty = None
    if with_default_qty:
        quantity = entry.get("quantity")
        default_qty = int(quantity) if isinstance(quantity, (int, float)) and quantity > 0 else 1
    return PickerItem(
        id=str(nested["id"]),
        title=str(nested.get(title_key) or fallback_title),
        subtitle=nested.get("slug") or None,
        image_url=nested.get("primaryImageUrl") or None,
        default_qty=default_qty,
    )


def map_snapshot_items(
    entries: Iterable[Mapping[str, Any]] | None,
    kind: ItemKind,
    *,
    with_default_qty: bool = False,
) -> list[PickerItem]:
    """Map offer snapshot entries (``{itemType, product|bundle}``) of one kind to picker items."""

    items: list[PickerItem] = []
    for entry in entries or ():
        if str(entry.get("itemType", "")).upper() != kind.value:
            continue
        item = _snapshot_item(entry, kind, with_default_qty=with_default_qty)
        if item is not None:
            items.append(item)
    return dedupe_items(items)


@dataclass(slots=True)
class PickerFetchers:
    scope_products: ItemFetcher = _no_items
    scope_bundles: ItemFetcher = _no_items
    grant_products: ItemFetcher = _no_items
    grant_bundles: ItemFetcher = _no_items

    def for_kind(self, kind: PickerKind) -> ItemFetcher:
        if kind is PickerKind.SCOPE_PRODUCTS:
            return self.scope_products
        if kind is PickerKind.SCOPE_BUNDLES:
            return self.scope_bundles
        if kind is PickerKind.GRANT_PRODUCTS:
            return self.grant_products
        return self.grant_bundles

    def restricted_to(self, eligibility: EligibilityList) -> "PickerFetchers":
        return PickerFetchers(
            scope_products=self.scope_products,
            scope_bundles=self.scope_bundles,
            grant_products=filter_eligible(self.grant_products, eligibility, ItemKind.PRODUCT),
            grant_bundles=filter_eligible(self.grant_bundles, eligibility, ItemKind.BUNDLE),
        )


def picker_fetchers_from_offer(
    scope_items: Iterable[Mapping[str, Any]] | None,
    grants: Iterable[Mapping[str, Any]] | None,
) -> PickerFetchers:
    """Build all four picker fetchers from an offer snapshot."""

    scope_list = list(scope_items or ())
    grant_list = list(grants or ())
    return PickerFetchers(
        scope_products=make_local_fetcher(map_snapshot_items(scope_list, ItemKind.PRODUCT)),
        scope_bundles=make_local_fetcher(map_snapshot_items(scope_list, ItemKind.BUNDLE)),
        grant_products=make_local_fetcher(map_snapshot_items(grant_list, ItemKind.PRODUCT, with_default_qty=True)),
        grant_bundles=make_local_fetcher(map_snapshot_items(grant_list, ItemKind.BUNDLE, with_default_qty=True)),
    )


class DebouncedItemSearch:
    """Debounced, single-flight search over one fetcher.

    Each call takes a ticket. Only the newest ticket reaches the fetcher
    after the debounce window, and a reply whose ticket was superseded while
    in flight is dropped (``None``) rather than merged.
    """

    def __init__(self, fetcher: ItemFetcher, *, debounce_seconds: float = 0.2) -> None:
        self._fetcher = fetcher
        self._debounce_seconds = max(0.0, debounce_seconds)
        self._ticket = 0

    async def search(self, query: str) -> list[PickerItem] | None:
        self._ticket += 1
        ticket = self._ticket
        await asyncio.sleep(self._debounce_seconds)
        if ticket != self._ticket:
            return None
        items = await self._fetcher(query)
        if ticket != self._ticket:
            return None
        return items


__all__ = [
    "DebouncedItemSearch",
    "ItemFetcher",
    "PickerFetchers",
    "PickerKind",
    "dedupe_items",
    "filter_eligible",
    "make_local_fetcher",
    "map_snapshot_items",
    "picker_fetchers_from_offer",
]
