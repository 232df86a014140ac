# Overview: Flask API routes for avatar and product image uploads.

from flask import Blueprint, request, jsonify, g, send_file

from ..decorators import require_auth, require_permission
from ..services import storage_service, auth_service, product_service
from ..services.storage_service import StorageError
from ..errors import LedgerError


storage_bp = Blueprint("storage", __name__)


def _read_upload() -> bytes:
    upload = request.files.get("file")
    if upload is not None:
        return upload.read()
    return request.get_data()


@storage_bp.post("/api/storage/avatar")
@require_auth
def upload_avatar():
    """Store the caller's avatar and save its URL on the profile."""
    try:
        url = storage_service.upload(_read_upload(), "avatars", f"{g.org_id}/user-{g.current_user.id}")
    except StorageError as e:
        return jsonify({"error": str(e)}), 400

    user = auth_service.update_profile(g.current_user.id, avatar_url=url)
    return jsonify({"url": url, "user": user.to_dict()}), 201


@storage_bp.post("/api/storage/products/<int:product_id>/image")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def upload_product_image(product_id: int):
    try:
        product = product_service.get_product(g.org_id, product_id)
        url = storage_service.upload(_read_upload(), "product-images", f"{g.org_id}/product-{product.id}")
        product = product_service.update_product(g.org_id, product.id, {"image_url": url})
    except StorageError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"url": url, "product": product.to_dict()}), 201


@storage_bp.get("/storage/<bucket>/<path:path>")
def serve_object(bucket: str, path: str):
    """Public read of stored objects (what STORAGE_PUBLIC_URL points at)."""
    try:
        target = storage_service.open_object(bucket, path)
    except StorageError:
        return jsonify({"error": "Not found"}), 404
    return send_file(target.resolve())
