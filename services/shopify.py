import json
from typing import List, Optional

import requests

from core.config import SHOPIFY_API_VERSION
from core.errors import (
    GatewayTimeoutError,
    Outcome,
    ShopifyGraphQLError,
    ShopifyUserError,
    UpstreamUnreachableError,
)
from core.logger import get_logger

logger = get_logger(__name__)

PAGE_SIZE = 50
TAG_PAGE_SIZE = 250
MAX_TAGS = 1000


def escape_search_term(value: str) -> str:
    return value.strip().replace("'", "\\'")


class AdminClient:
    def __init__(self, domain: str, token: str):
        self.domain = domain
        self.token = token
        self.endpoint = f"https://{self.domain}/admin/api/{SHOPIFY_API_VERSION}/graphql.json"

        self.headers = {
            "X-Shopify-Access-Token": self.token,
            "Content-Type": "application/json",
        }

    # ---------- Internal helper ----------
    def _graphql(self, query: str, variables: Optional[dict] = None) -> dict:
        try:
            response = requests.post(
                self.endpoint,
                headers=self.headers,
                json={"query": query, "variables": variables or {}},
                timeout=30,
            )
        except requests.Timeout as e:
            raise GatewayTimeoutError("Shopify Admin API timed out") from e
        except requests.RequestException as e:
            raise UpstreamUnreachableError("Failed to reach the Shopify Admin API") from e

        if response.status_code != 200:
            logger.error(f"Shopify HTTP error {response.status_code} for {self.domain}: {response.text[:500]}")
            raise ShopifyGraphQLError([{"message": f"Shopify HTTP error: {response.status_code}"}])

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Shopify returned a non-JSON body for {self.domain}: {response.text[:500]}")
            raise ShopifyGraphQLError([{"message": "Shopify returned a non-JSON response"}])

        if data.get("errors"):
            logger.error(f"Shopify GraphQL errors for {self.domain}: {json.dumps(data['errors'])}")
            raise ShopifyGraphQLError(data["errors"])

        return data.get("data") or {}

    # ---------- Checkout ----------
    def get_checkout_profile_id(self) -> Optional[str]:
        query = """
        query getCheckoutProfiles {
          checkoutProfiles(first: 1, sortKey: UPDATED_AT, reverse: true) {
            nodes { id isPublished }
          }
        }
        """
        profiles = (self._graphql(query).get("checkoutProfiles") or {}).get("nodes") or []
        profile = next((p for p in profiles if p.get("isPublished")), profiles[0] if profiles else None)
        if not profile or not profile.get("id"):
            return None
        # gid://shopify/CheckoutProfile/3706912837 -> 3706912837
        return profile["id"].rsplit("/", 1)[-1]

    def create_web_pixel(self, account_id: str) -> dict:
        mutation = """
        mutation webPixelCreate($webPixel: WebPixelInput!) {
          webPixelCreate(webPixel: $webPixel) {
            userErrors { code field message }
            webPixel { settings id }
          }
        }
        """
        variables = {"webPixel": {"settings": json.dumps({"accountID": account_id})}}
        result = self._graphql(mutation, variables).get("webPixelCreate") or {}

        user_errors = result.get("userErrors") or []
        if user_errors:
            logger.error(f"webPixelCreate user errors for {self.domain}: {json.dumps(user_errors)}")
            raise ShopifyUserError(user_errors, "Failed to create web pixel")

        return result.get("webPixel")

    # ---------- Collections ----------
    def _collection_products_count(self, collection_id: str) -> Outcome[int]:
        query = """
        query getCollectionProducts($collectionId: ID!) {
          collection(id: $collectionId) { productsCount { count } }
        }
        """
        try:
            data = self._graphql(query, {"collectionId": collection_id})
        except (ShopifyGraphQLError, UpstreamUnreachableError, GatewayTimeoutError) as e:
            return Outcome(error=e)

        products_count = (data.get("collection") or {}).get("productsCount") or {}
        if isinstance(products_count, dict):
            return Outcome(value=products_count.get("count") or 0)
        return Outcome(value=products_count or 0)

    def search_collections(self, search_query: str = "") -> List[dict]:
        query = """
        query searchCollections($first: Int!, $query: String) {
          collections(first: $first, query: $query) {
            nodes {
              id title handle description
              image { url altText }
            }
          }
        }
        """
        variables = {"first": PAGE_SIZE}
        if search_query.strip():
            variables["query"] = f"title:*{escape_search_term(search_query)}*"

        collections = (self._graphql(query, variables).get("collections") or {}).get("nodes") or []

        rows = []
        for c in collections:
            count = self._collection_products_count(c["id"])
            if not count.ok:
                logger.warning(f"Product count unavailable for collection {c['id']}: {count.error}")

            image = c.get("image") or {}
            rows.append({
                "id": c["id"],
                "title": c.get("title"),
                "handle": c.get("handle"),
                "description": c.get("description") or "",
                "image": image.get("url"),
                "imageAlt": image.get("altText") or c.get("title"),
                "productsCount": count.value if count.ok else 0,
            })
        return rows

    # ---------- Products ----------
    def list_tags(self, search_query: str = "") -> List[str]:
        query = """
        query getProductsWithTags($first: Int!, $after: String) {
          products(first: $first, after: $after) {
            pageInfo { hasNextPage endCursor }
            nodes { tags }
          }
        }
        """
        cursor = None
        has_next_page = True
        all_tags: List[str] = []

        while has_next_page and len(all_tags) < MAX_TAGS:
            variables = {"first": TAG_PAGE_SIZE}
            if cursor:
                variables["after"] = cursor

            products = self._graphql(query, variables).get("products") or {}
            for product in products.get("nodes") or []:
                all_tags.extend(product.get("tags") or [])

            page_info = products.get("pageInfo") or {}
            has_next_page = bool(page_info.get("hasNextPage"))
            cursor = page_info.get("endCursor")

        tags = sorted({tag for tag in all_tags if tag and tag.strip()})
        term = search_query.strip().lower()
        if term:
            tags = [tag for tag in tags if term in tag.lower()]
        return tags

    def list_product_types(self) -> List[str]:
        query = """
        query getProductTypes {
          products(first: 250) { nodes { productType } }
        }
        """
        products = (self._graphql(query).get("products") or {}).get("nodes") or []
        return sorted({p["productType"] for p in products if (p.get("productType") or "").strip()})

    @staticmethod
    def _product_row(p: dict, with_tags: bool = False) -> dict:
        image = p.get("featuredImage") or {}
        row = {
            "id": p["id"],
            "title": p.get("title"),
            "handle": p.get("handle"),
            "productType": p.get("productType"),
            "vendor": p.get("vendor"),
            "image": image.get("url"),
            "imageAlt": image.get("altText") or p.get("title"),
            "status": p.get("status"),
        }
        if with_tags:
            row["tags"] = p.get("tags") or []
        return row

    def _search_products(self, query_filter: Optional[str], with_tags: bool = False) -> List[dict]:
        query = """
        query searchProducts($first: Int!, $query: String) {
          products(first: $first, query: $query) {
            nodes {
              id title handle productType vendor tags status
              featuredImage { url altText }
            }
          }
        }
        """
        variables = {"first": PAGE_SIZE}
        if query_filter:
            variables["query"] = query_filter

        products = (self._graphql(query, variables).get("products") or {}).get("nodes") or []
        return [self._product_row(p, with_tags) for p in products]

    def search_products(self, product_type: str = "", search_query: str = "") -> List[dict]:
        filters = []
        if product_type:
            filters.append(f"product_type:'{escape_search_term(product_type)}'")
        if search_query.strip():
            term = escape_search_term(search_query)
            filters.append(f"title:*{term}* OR vendor:*{term}*")

        return self._search_products(" AND ".join(filters) or None)

    def products_by_tags(self, search_query: str = "") -> List[dict]:
        if search_query.strip():
            query_filter = f"tag:*{escape_search_term(search_query)}*"
        else:
            query_filter = "tag:*"
        return self._search_products(query_filter, with_tags=True)

    # ---------- Variants ----------
    def search_variants(self, search_query: str = "") -> List[dict]:
        query = """
        query searchVariants($first: Int!, $query: String) {
          productVariants(first: $first, query: $query) {
            nodes {
              id title sku displayName
              image { url altText }
              product { id title handle }
            }
          }
        }
        """
        variables = {"first": PAGE_SIZE}
        if search_query.strip():
            term = escape_search_term(search_query)
            variables["query"] = f"title:*{term}* OR sku:*{term}* OR product_title:*{term}*"

        variants = (self._graphql(query, variables).get("productVariants") or {}).get("nodes") or []

        rows = []
        for v in variants:
            product = v.get("product") or {}
            image = v.get("image") or {}
            title = v.get("displayName") or v.get("title") or ""
            rows.append({
                "id": v["id"],
                "title": title,
                "sku": v.get("sku") or "",
                "productId": product.get("id"),
                "productTitle": product.get("title") or "",
                "productHandle": product.get("handle") or "",
                "image": image.get("url"),
                "imageAlt": image.get("altText") or title or product.get("title") or "",
            })
        return rows

    # ---------- Webhooks ----------
    def register_webhook(self, topic: str, callback_url: str) -> None:
        mutation = """
        mutation webhookSubscriptionCreate($topic: WebhookSubscriptionTopic!, $callbackUrl: URL!) {
          webhookSubscriptionCreate(
            topic: $topic,
            webhookSubscription: { callbackUrl: $callbackUrl, format: JSON }
          ) {
            webhookSubscription { id }
            userErrors { field message }
          }
        }
        """
        result = self._graphql(mutation, {"topic": topic, "callbackUrl": callback_url})
        user_errors = (result.get("webhookSubscriptionCreate") or {}).get("userErrors") or []
        if user_errors:
            raise ShopifyUserError(user_errors, f"Webhook create failed for {topic}")
