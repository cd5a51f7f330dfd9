# backend/catalog_service/catalog/messages.py
"""Bilingual user-facing messages, keyed by language code."""

from typing import Dict, Optional

Message = Dict[str, str]

DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES = ("en", "id")

INTERNAL_ERROR: Message = {
    "en": "Internal server error",
    "id": "Terjadi kesalahan pada server",
}
INVALID_REQUEST_DATA: Message = {
    "en": "Invalid request data",
    "id": "Data permintaan tidak valid",
}
INVALID_PRODUCT_ID_FORMAT: Message = {
    "en": "Invalid product ID format",
    "id": "Format ID produk tidak valid",
}
INVALID_IMAGE_ID_FORMAT: Message = {
    "en": "Invalid image ID format",
    "id": "Format ID gambar tidak valid",
}
INVALID_QUANTITY: Message = {
    "en": "Quantity to decrease must be a positive integer",
    "id": "Jumlah yang dikurangi harus bilangan bulat positif",
}
NO_PRODUCT_ITEMS: Message = {
    "en": "No product items provided",
    "id": "Tidak ada item produk",
}
PRODUCT_NOT_FOUND: Message = {
    "en": "Product not found",
    "id": "Produk tidak ditemukan",
}
IMAGE_NOT_FOUND: Message = {
    "en": "Image not found",
    "id": "Gambar tidak ditemukan",
}
INSUFFICIENT_PRODUCT_QUANTITY: Message = {
    "en": "Insufficient product quantity",
    "id": "Jumlah produk tidak mencukupi",
}
ACCESS_DENIED: Message = {
    "en": "Access denied only for admin",
    "id": "Akses ditolak hanya untuk admin",
}
INVALID_CREDENTIALS: Message = {
    "en": "Could not validate credentials",
    "id": "Kredensial tidak dapat divalidasi",
}
FAILED_CREATE_PRODUCT: Message = {
    "en": "Failed to create product",
    "id": "Gagal membuat produk",
}
FAILED_UPDATE_PRODUCT: Message = {
    "en": "Failed to update product",
    "id": "Gagal memperbarui produk",
}
FAILED_DELETE_PRODUCT: Message = {
    "en": "Failed to delete product",
    "id": "Gagal menghapus produk",
}
FAILED_GET_PRODUCTS: Message = {
    "en": "Failed to get products",
    "id": "Gagal mendapatkan produk",
}
FAILED_DECREASE_PRODUCT_QUANTITY: Message = {
    "en": "Failed to decrease product quantity",
    "id": "Gagal mengurangi jumlah produk",
}
FAILED_UPLOAD_PRODUCT_IMAGES: Message = {
    "en": "Failed to save product images",
    "id": "Gagal menyimpan gambar produk",
}
FAILED_DELETE_IMAGE: Message = {
    "en": "Failed to delete image",
    "id": "Gagal menghapus gambar",
}
FAILED_GET_PRESIGNED_URL: Message = {
    "en": "Failed to get presigned URL",
    "id": "Gagal mendapatkan URL presigned",
}
FAILED_GET_IMAGE_OBJECT: Message = {
    "en": "Failed to read image object",
    "id": "Gagal membaca objek gambar",
}
OBJECT_STORAGE_UNAVAILABLE: Message = {
    "en": "Object storage is not configured or available",
    "id": "Penyimpanan objek tidak dikonfigurasi atau tidak tersedia",
}
DATABASE_UNAVAILABLE: Message = {
    "en": "Database operation failed",
    "id": "Operasi basis data gagal",
}
CONSTRAINT_VIOLATION: Message = {
    "en": "Data violates a storage constraint",
    "id": "Data melanggar batasan penyimpanan",
}
FAILED_SEARCH_PRODUCTS: Message = {
    "en": "Failed to search products",
    "id": "Gagal mencari produk",
}
FAILED_INSERT_PRODUCT_TO_INDEX: Message = {
    "en": "Product was created but is not searchable yet",
    "id": "Produk berhasil dibuat tetapi belum dapat dicari",
}
FAILED_UPDATE_PRODUCT_IN_INDEX: Message = {
    "en": "Product was updated but the search index is stale",
    "id": "Produk berhasil diperbarui tetapi indeks pencarian belum diperbarui",
}
FAILED_DELETE_PRODUCT_FROM_INDEX: Message = {
    "en": "Failed to delete product from search index",
    "id": "Gagal menghapus produk dari indeks pencarian",
}
INVALID_SEARCH_DOCUMENT: Message = {
    "en": "Invalid search document",
    "id": "Dokumen pencarian tidak valid",
}
INVALID_SEARCH_REQUEST: Message = {
    "en": "Search request rejected, try a narrower page range",
    "id": "Permintaan pencarian ditolak, coba rentang halaman yang lebih kecil",
}
OPERATION_CANCELLED: Message = {
    "en": "Operation cancelled before completion",
    "id": "Operasi dibatalkan sebelum selesai",
}


def pick_language(accept_language: Optional[str]) -> str:
    """Return the first supported language named in an Accept-Language header."""
    if not accept_language:
        return DEFAULT_LANGUAGE
    for part in accept_language.split(","):
        code = part.split(";")[0].strip().lower()
        primary = code.split("-")[0]
        if primary in SUPPORTED_LANGUAGES:
            return primary
    return DEFAULT_LANGUAGE


def translate(message: Message, language: str = DEFAULT_LANGUAGE) -> str:
    return message.get(language) or message[DEFAULT_LANGUAGE]
