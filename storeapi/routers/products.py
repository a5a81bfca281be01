"""Product API endpoints."""

from __future__ import annotations

import hashlib
import json
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Path, Request, Response, status
from fastapi.encoders import jsonable_encoder

from ..catalog import CatalogService
from ..dependencies import authorize, get_catalog
from ..schemas import ChangePriceRequest, CreateProductRequest, ErrorResponse, ProductResponse
from ..security import Principal

router = APIRouter(prefix="/api/products", tags=["Products"])

IDEMPOTENCY_HEADER = "Idempotency-Id"

ERROR_CONTENT = {"application/json": {"schema": ErrorResponse.model_json_schema(by_alias=True)}}
UNAUTHORIZED_RESPONSE = {
    "description": "Authentication required.",
    "content": ERROR_CONTENT,
    "headers": {"WWW-Authenticate": {"schema": {"type": "string"}}},
}
FORBIDDEN_RESPONSE = {
    "description": "Insufficient privileges.",
    "content": ERROR_CONTENT,
}
NOT_FOUND_RESPONSE = {
    "description": "Product not found.",
    "content": ERROR_CONTENT,
}
CONFLICT_RESPONSE = {
    "description": "Idempotency key already used, or SKU already taken.",
    "content": ERROR_CONTENT,
}
BAD_REQUEST_RESPONSE = {
    "description": "Missing or blank idempotency key, or invalid payload.",
    "content": ERROR_CONTENT,
}


def _compute_etag(payload: object) -> str:
    encoded = json.dumps(jsonable_encoder(payload, by_alias=True), sort_keys=True, separators=(",", ":")).encode("utf-8")
    return f'W/"{hashlib.sha256(encoded).hexdigest()}"'


def _json_response(payload: object, *, status_code: int = 200, headers: Optional[dict[str, str]] = None) -> Response:
    return Response(
        status_code=status_code,
        content=json.dumps(jsonable_encoder(payload), ensure_ascii=False, separators=(",", ":")),
        media_type="application/json; charset=utf-8",
        headers=headers,
    )


def _product_response(body: ProductResponse, *, status_code: int = 200, headers: Optional[dict[str, str]] = None) -> Response:
    merged = {"ETag": _compute_etag(body), "Cache-Control": "no-cache"}
    merged.update(headers or {})
    return _json_response(body, status_code=status_code, headers=merged)


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
    operation_id="createProduct",
    responses={
        201: {
            "description": "Product created.",
            "headers": {
                "Location": {"schema": {"type": "string"}},
                "ETag": {"schema": {"type": "string"}},
            },
        },
        400: BAD_REQUEST_RESPONSE,
        401: UNAUTHORIZED_RESPONSE,
        409: CONFLICT_RESPONSE,
    },
)
def create_product(
    request: Request,
    product_in: CreateProductRequest,
    idempotency_id: Optional[str] = Header(default=None, alias=IDEMPOTENCY_HEADER),
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(authorize),
) -> Response:
    """Create a product, admitting the idempotency key first."""

    product = catalog.create_product(product_in, idempotency_id, principal.subject, request.url.path)
    body = ProductResponse.model_validate(product)
    location = str(request.app.url_path_for("getProduct", product_id=str(body.id)))
    return _product_response(body, status_code=status.HTTP_201_CREATED, headers={"Location": location})


@router.get(
    "",
    response_model=List[ProductResponse],
    summary="List products",
    operation_id="listProducts",
    responses={401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE},
)
def list_products(
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(authorize),
) -> Response:
    items = [ProductResponse.model_validate(product) for product in catalog.list_products()]
    return _json_response(items, headers={"Cache-Control": "no-cache"})


@router.get(
    "/by-sku/{sku}",
    response_model=ProductResponse,
    summary="Retrieve product by SKU",
    operation_id="getProductBySku",
    responses={401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
def get_product_by_sku(
    sku: str = Path(min_length=1, max_length=64),
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(authorize),
) -> Response:
    return _product_response(ProductResponse.model_validate(catalog.get_product_by_sku(sku)))


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Retrieve product",
    operation_id="getProduct",
    name="getProduct",
    responses={401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
def get_product(
    product_id: int = Path(),
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(authorize),
) -> Response:
    return _product_response(ProductResponse.model_validate(catalog.get_product(product_id)))


@router.put(
    "/{product_id}/price",
    response_model=ProductResponse,
    summary="Change product price",
    operation_id="changeProductPrice",
    responses={
        400: BAD_REQUEST_RESPONSE,
        401: UNAUTHORIZED_RESPONSE,
        404: NOT_FOUND_RESPONSE,
        409: CONFLICT_RESPONSE,
    },
)
def change_price(
    request: Request,
    price_in: ChangePriceRequest,
    product_id: int = Path(),
    idempotency_id: Optional[str] = Header(default=None, alias=IDEMPOTENCY_HEADER),
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(authorize),
) -> Response:
    product = catalog.change_price(product_id, price_in.new_price, idempotency_id, principal.subject, request.url.path)
    return _product_response(ProductResponse.model_validate(product))


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete product",
    operation_id="deleteProduct",
    responses={
        204: {"description": "Product deleted."},
        400: BAD_REQUEST_RESPONSE,
        401: UNAUTHORIZED_RESPONSE,
        404: NOT_FOUND_RESPONSE,
        409: CONFLICT_RESPONSE,
    },
)
def delete_product(
    request: Request,
    product_id: int = Path(),
    idempotency_id: Optional[str] = Header(default=None, alias=IDEMPOTENCY_HEADER),
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(authorize),
) -> Response:
    catalog.delete_product(product_id, idempotency_id, principal.subject, request.url.path)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
