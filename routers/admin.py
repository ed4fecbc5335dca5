from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from core.deps import get_admin_client
from services.shopify import AdminClient

router = APIRouter(prefix="/api", tags=["admin"])

DEFAULT_PIXEL_ACCOUNT_ID = "123"


@router.get("/checkout-profile")
def checkout_profile(admin: AdminClient = Depends(get_admin_client)):
    return {"profileId": admin.get_checkout_profile_id()}


@router.post("/webpixel-create")
def webpixel_create(
    payload: Optional[dict] = Body(default=None),
    admin: AdminClient = Depends(get_admin_client),
):
    account_id = (payload or {}).get("accountID") or DEFAULT_PIXEL_ACCOUNT_ID
    web_pixel = admin.create_web_pixel(str(account_id))
    return {"success": True, "webPixel": web_pixel, "message": "Web pixel created successfully"}


@router.api_route("/webpixel-create", methods=["GET", "PUT", "PATCH", "DELETE"])
def webpixel_create_method_not_allowed():
    return JSONResponse(
        status_code=405,
        content={"success": False, "error": "Method not allowed", "message": "Use POST"},
        headers={"Allow": "POST"},
    )


@router.get("/collections")
def collections(query: str = "", admin: AdminClient = Depends(get_admin_client)):
    rows = admin.search_collections(query)
    return {"success": True, "collections": rows, "count": len(rows)}


@router.get("/tags")
def tags(query: str = "", admin: AdminClient = Depends(get_admin_client)):
    names = admin.list_tags(query)
    return {"success": True, "tags": [{"name": tag, "id": tag} for tag in names], "count": len(names)}


@router.get("/product-types")
def product_types(admin: AdminClient = Depends(get_admin_client)):
    return {"success": True, "productTypes": admin.list_product_types()}


@router.get("/products-search")
def products_search(type: str = "", query: str = "", admin: AdminClient = Depends(get_admin_client)):
    products = admin.search_products(type, query)
    return {"success": True, "products": products, "count": len(products)}


@router.get("/products-by-tags")
def products_by_tags(query: str = "", admin: AdminClient = Depends(get_admin_client)):
    products = admin.products_by_tags(query)
    return {"success": True, "products": products, "count": len(products)}


@router.get("/variants")
def variants(query: str = "", admin: AdminClient = Depends(get_admin_client)):
    rows = admin.search_variants(query)
    return {"success": True, "variants": rows, "count": len(rows)}
