"""Read-only access to the product catalog for checkout pricing."""

import logging
from collections import defaultdict
from typing import Any

from drip_checkout.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)


def pick_variant(
    variants: list[dict[str, Any]],
    selected_size: str | None = None,
    selected_color: str | None = None,
) -> dict[str, Any] | None:
    """Choose the variant matching the selected options.

    option1 carries the size and option2 the color. Unselected options
    match anything. Falls back to the first variant when nothing matches.

    Args:
        variants: Variants of one product, ordered by position.
        selected_size: Size chosen in the cart, if any.
        selected_color: Color chosen in the cart, if any.

    Returns:
        dict | None: The chosen variant, or None if the product has none.
    """
    for variant in variants:
        size_ok = not selected_size or variant.get("option1") == selected_size
        color_ok = not selected_color or variant.get("option2") == selected_color
        if size_ok and color_ok:
            return variant
    return variants[0] if variants else None


class CatalogService:
    """Service resolving cart product ids against the catalog tables."""

    def __init__(self) -> None:
        """Initialize catalog service with Supabase client."""
        self.client = get_supabase_client()

    async def get_products_by_ids(self, product_ids: list[int]) -> dict[int, dict[str, Any]]:
        """Load products with their variants and images.

        Args:
            product_ids: Product ids referenced by cart lines.

        Returns:
            dict[int, dict]: Products keyed by id, each carrying ``variants``
            and ``images`` lists sorted by position. Missing ids are absent.
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}

        products = (
            self.client.table("products")
            .select("id,title,handle")
            .in_("id", ids)
            .execute()
        ).data or []
        if not products:
            return {}

        found_ids = [p["id"] for p in products]
        variants = (
            self.client.table("product_variants")
            .select("*")
            .in_("product_id", found_ids)
            .order("position")
            .execute()
        ).data or []
        images = (
            self.client.table("product_images")
            .select("product_id,src,position")
            .in_("product_id", found_ids)
            .order("position")
            .execute()
        ).data or []

        variants_by_product: dict[int, list[dict[str, Any]]] = defaultdict(list)
        for variant in variants:
            variants_by_product[variant["product_id"]].append(variant)

        images_by_product: dict[int, list[dict[str, Any]]] = defaultdict(list)
        for image in images:
            images_by_product[image["product_id"]].append(image)

        logger.debug("Resolved %d of %d cart products", len(products), len(ids))
        return {
            p["id"]: {
                **p,
                "variants": variants_by_product[p["id"]],
                "images": images_by_product[p["id"]],
            }
            for p in products
        }
