"""
Flask application and OCI registry endpoints.

Implements the OCI Distribution Specification v1.0 API endpoints on top of
RegistryStorage. Request bodies of blob uploads are streamed into storage in
UPLOAD_CHUNK_SIZE chunks and are never buffered whole in memory.

Endpoints:
    - GET/HEAD /v2/ - Version check
    - GET/HEAD/PUT /v2/<name>/manifests/<reference> - Pull/push manifests
    - GET/HEAD /v2/<name>/blobs/<digest> - Pull blobs (single byte ranges supported)
    - POST /v2/<name>/blobs/uploads/ - Start upload, mount, or monolithic upload
    - GET/HEAD/PATCH/PUT/DELETE /v2/<name>/blobs/uploads/<id> - Chunked upload
    - GET /v2/<name>/tags/list, GET /v2/_catalog - Not supported (405)
    - GET /v2/<name>/referrers/<digest> - Not supported (404)

Manifest and blob deletion are not supported; Flask answers DELETE on those
routes with 405 Method Not Allowed.
"""

import logging

from flask import Flask, Response, abort, jsonify, request

from .config import config
from .digest import SHA256, Digest, compute_digest, is_supported
from .errors import BlobUploadUnknown, DigestMismatch, MalformedRange, RangeNotSatisfiable, RegistryError, UploadConflict
from .http_range import parse_content_range, parse_range_header
from .manifest import manifest_media_type, validate_manifest
from .reference import Tag
from .storage import DistributionRegistryStorage, RegistryStorage
from .validation import parse_digest_param, parse_reference_param, validate_repository_name

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"

# Create Flask app
app = Flask(__name__)


def get_storage() -> RegistryStorage:
    """
    Return the storage backend of the application.

    Created on first use from STORAGE_DIR; tests inject their own instance
    through app.config["REGISTRY_STORAGE"]. One instance must serve all
    requests, since it holds the per-upload locks.
    """
    storage = app.config.get("REGISTRY_STORAGE")
    if storage is None:
        storage = DistributionRegistryStorage(config.STORAGE_DIR, chunk_size=config.UPLOAD_CHUNK_SIZE)
        app.config["REGISTRY_STORAGE"] = storage
        logger.info(f"Using storage directory {config.STORAGE_DIR}")
    return storage


def request_chunks():
    """Iterate over the request body in UPLOAD_CHUNK_SIZE chunks."""
    stream = request.stream
    return iter(lambda: stream.read(config.UPLOAD_CHUNK_SIZE), b"")


def upload_range(size: int) -> str:
    return f"0-{max(size - 1, 0)}"


def upload_location(name: str, upload_id: str) -> str:
    return f"/v2/{name}/blobs/uploads/{upload_id}"


def check_octet_stream() -> None:
    content_type = request.headers.get("Content-Type")
    if content_type is not None and content_type != OCTET_STREAM:
        logger.warning(f"Invalid upload Content-Type: {content_type}")
        abort(400, f"Invalid Content-Type: {OCTET_STREAM} required")


def request_upload_offset():
    """
    Return the start offset of an upload request body.

    Uses the Content-Range header ("<first>-<last>") when present and checks
    it against Content-Length. Docker sends chunks without Content-Range;
    those are appended at the current end of the upload (None).
    """
    header = request.headers.get("Content-Range")
    if header is None:
        return None
    content_range = parse_content_range(header)
    if request.content_length is None or request.content_length != content_range.length:
        raise MalformedRange(f"Content-Range '{header}' does not match Content-Length {request.content_length}")
    return content_range.first


def blob_created(name: str, digest: Digest) -> Response:
    resp = Response(status=201)
    resp.headers["Location"] = f"/v2/{name}/blobs/{digest}"
    resp.headers["Docker-Content-Digest"] = str(digest)
    return resp


def upload_accepted(name: str, upload_id: str, size: int, status: int = 202) -> Response:
    resp = Response(status=status)
    resp.headers["Location"] = upload_location(name, upload_id)
    resp.headers["Range"] = upload_range(size)
    resp.headers["Docker-Upload-UUID"] = upload_id
    return resp


@app.errorhandler(RegistryError)
def handle_registry_error(error: RegistryError):
    """Render storage and protocol errors as OCI JSON error responses."""
    logger.warning(f"{request.method} {request.path} failed: {error.code}: {error}")
    resp = jsonify({"errors": [{"code": error.code, "message": str(error)}]})
    resp.status_code = error.status_code
    if isinstance(error, RangeNotSatisfiable) and error.size is not None:
        resp.headers["Content-Range"] = f"bytes */{error.size}"
    if isinstance(error, UploadConflict) and error.size is not None:
        resp.headers["Range"] = upload_range(error.size)
    return resp


# -------------------------------
# Registry Endpoints
# -------------------------------


@app.route("/v2/", methods=["GET", "HEAD"], strict_slashes=False)
def v2_root():
    """
    OCI Distribution API version check endpoint.

    Headers:
        Docker-Distribution-API-Version: registry/2.0
    """
    logger.info("Registry v2 API root accessed")
    resp = Response(status=200)
    resp.headers["Docker-Distribution-API-Version"] = "registry/2.0"
    return resp


@app.route("/v2/_catalog", methods=["GET"])
def catalog():
    return Response(status=405)


@app.route("/v2/<path:name>/tags/list", methods=["GET"])
def tags_list(name):
    return Response(status=405)


@app.route("/v2/<path:name>/referrers/<digest>", methods=["GET"])
def referrers(name, digest):
    abort(404)


@app.route("/v2/<path:name>/manifests/<reference>", methods=["GET", "HEAD"])
def get_manifest(name, reference):
    """
    Get or check a manifest by tag or digest.

    Response Headers:
        Content-Type: mediaType field of the stored manifest
        Content-Length: Size of manifest in bytes
        Docker-Content-Digest: Digest the manifest is stored under

    Raises:
        400: Invalid name or reference
        404: Manifest not found in the repository
    """
    validate_repository_name(name)
    parsed = parse_reference_param(reference)

    logger.info(f"Manifest requested: repository='{name}', reference='{reference}', method={request.method}")

    manifest = get_storage().get_manifest(name, parsed)
    if manifest is None:
        logger.warning(f"Manifest not found: repository='{name}', reference='{reference}'")
        abort(404)

    content_type = manifest_media_type(manifest.data) or OCTET_STREAM
    if request.method == "HEAD":
        resp = Response(status=200)
    else:
        resp = Response(manifest.data, status=200)
    resp.headers["Content-Type"] = content_type
    resp.headers["Content-Length"] = str(len(manifest.data))
    resp.headers["Docker-Content-Digest"] = str(manifest.digest)
    return resp


@app.route("/v2/<path:name>/manifests/<reference>", methods=["PUT"])
def put_manifest(name, reference):
    """
    Push a manifest by tag or digest.

    The body digest is computed with the reference's algorithm (sha256 when
    pushing by tag) and must match a digest reference. The manifest is
    stored under its digest and, when pushed by tag, the tag is moved to it.

    Raises:
        400: Invalid reference, digest mismatch, or invalid manifest
        413: Manifest larger than MAX_MANIFEST_SIZE
    """
    validate_repository_name(name)
    parsed = parse_reference_param(reference)
    if isinstance(parsed, Digest) and not is_supported(parsed.algorithm):
        logger.warning(f"Unsupported digest algorithm: {reference}")
        abort(400, f"Unsupported digest algorithm: {parsed.algorithm.id}")

    if request.content_length is not None and request.content_length > config.MAX_MANIFEST_SIZE:
        logger.warning(f"Manifest too large: {request.content_length} bytes")
        abort(413)
    data = request.get_data()
    if len(data) > config.MAX_MANIFEST_SIZE:
        abort(413)

    algorithm = parsed.algorithm if isinstance(parsed, Digest) else SHA256
    digest = compute_digest(data, algorithm)
    if isinstance(parsed, Digest) and parsed != digest:
        raise DigestMismatch(f"Manifest has digest {digest}, not {parsed}", expected=str(parsed), actual=str(digest))

    validate_manifest(get_storage(), name, data, request.headers.get("Content-Type"))
    get_storage().put_manifest(name, digest, data)
    if isinstance(parsed, Tag):
        get_storage().tag_manifest(name, digest, parsed)

    logger.info(f"Manifest pushed: repository='{name}', reference='{reference}', digest={digest}")
    resp = Response(status=201)
    resp.headers["Location"] = f"/v2/{name}/manifests/{parsed}"
    resp.headers["Docker-Content-Digest"] = str(digest)
    return resp


@app.route("/v2/<path:name>/blobs/<digest>", methods=["GET", "HEAD"])
def get_blob(name, digest):
    """
    Get or check a blob by digest.

    GET honours a single-range "Range: bytes=..." header with 206 Partial
    Content. Multi-range requests and non-byte units get the full body.

    Raises:
        400: Invalid name, digest, or Range header
        404: Blob not linked into the repository
        416: Range not satisfiable
    """
    validate_repository_name(name)
    parsed = parse_digest_param(digest)

    blob = get_storage().get_blob(name, parsed)
    if blob is None:
        logger.warning(f"Blob not found: repository='{name}', digest='{digest}'")
        abort(404)

    if request.method == "HEAD":
        resp = Response(status=200)
        resp.headers["Content-Type"] = OCTET_STREAM
        resp.headers["Content-Length"] = str(blob.size)
        resp.headers["Docker-Content-Digest"] = str(blob.digest)
        logger.info(f"Blob HEAD: repository='{name}', digest='{digest}'")
        return resp

    specs = parse_range_header(request.headers.get("Range"))
    if specs is not None and len(specs) == 1:
        byte_range = specs[0].resolve(blob.size)
        resp = Response(
            blob.iter_bytes(byte_range.first, byte_range.length, config.UPLOAD_CHUNK_SIZE),
            status=206,
            mimetype=OCTET_STREAM,
        )
        resp.headers["Content-Length"] = str(byte_range.length)
        resp.headers["Content-Range"] = byte_range.content_range(blob.size)
        logger.info(f"Blob range sent: repository='{name}', digest='{digest}', range={byte_range.content_range(blob.size)}")
    else:
        resp = Response(blob.iter_bytes(chunk_size=config.UPLOAD_CHUNK_SIZE), status=200, mimetype=OCTET_STREAM)
        resp.headers["Content-Length"] = str(blob.size)
        logger.info(f"Blob sent: repository='{name}', digest='{digest}'")
    resp.headers["Docker-Content-Digest"] = str(blob.digest)
    return resp


@app.route("/v2/<path:name>/blobs/uploads/", methods=["POST"])
def post_blob_upload(name):
    """
    Start a blob upload.

    Query Parameters:
        mount, from: Mount an existing blob from another repository (201);
            falls back to starting a regular upload (202) if it cannot be mounted
        digest: Monolithic upload, the request body is the whole blob (201)

    Without parameters a new upload session is created (202).
    """
    validate_repository_name(name)
    storage = get_storage()

    mount = request.args.get("mount")
    from_repository = request.args.get("from")
    if mount is not None and from_repository is not None:
        digest = parse_digest_param(mount)
        validate_repository_name(from_repository)
        if storage.mount_blob(name, digest, from_repository):
            return blob_created(name, digest)

    elif request.args.get("digest") is not None:
        digest = parse_digest_param(request.args.get("digest"), require_supported=True)
        check_octet_stream()
        upload_id = storage.create_blob_upload(name)
        try:
            storage.finish_blob_upload(name, upload_id, request_chunks(), None, digest)
        except RegistryError:
            storage.cancel_blob_upload(name, upload_id)
            raise
        logger.info(f"Monolithic upload finished: repository='{name}', digest={digest}")
        return blob_created(name, digest)

    upload_id = storage.create_blob_upload(name)
    return upload_accepted(name, upload_id, 0)


@app.route("/v2/<path:name>/blobs/uploads/<upload_id>", methods=["GET", "HEAD"])
def get_blob_upload(name, upload_id):
    """Report the current offset of an upload (204 with Range header)."""
    validate_repository_name(name)
    size = get_storage().get_blob_upload_size(name, upload_id)
    if size is None:
        raise BlobUploadUnknown(f"Upload {upload_id} not found in {name}")
    return upload_accepted(name, upload_id, size, status=204)


@app.route("/v2/<path:name>/blobs/uploads/<upload_id>", methods=["PATCH"])
def patch_blob_upload(name, upload_id):
    """
    Append a chunk to an upload.

    Request Headers:
        Content-Range: Optional "<first>-<last>"; first must equal the
            current upload offset
        Content-Length: Required with Content-Range, must match its length

    Raises:
        400: Invalid Content-Range or Content-Type
        404: Unknown upload
        416: Offset mismatch or concurrent write to the same upload
    """
    validate_repository_name(name)
    offset = request_upload_offset()
    check_octet_stream()
    size = get_storage().progress_blob_upload(name, upload_id, request_chunks(), offset)
    logger.info(f"Upload chunk accepted: repository='{name}', upload={upload_id}, offset={size}")
    return upload_accepted(name, upload_id, size)


@app.route("/v2/<path:name>/blobs/uploads/<upload_id>", methods=["PUT"])
def put_blob_upload(name, upload_id):
    """
    Finish an upload, optionally with a final chunk in the body.

    Query Parameters:
        digest: Required digest of the complete blob

    Raises:
        400: Missing or invalid digest, digest mismatch, invalid headers
        404: Unknown upload
        416: Offset mismatch or concurrent write to the same upload
    """
    validate_repository_name(name)
    digest = parse_digest_param(request.args.get("digest"), require_supported=True)
    offset = request_upload_offset()
    check_octet_stream()
    get_storage().finish_blob_upload(name, upload_id, request_chunks(), offset, digest)
    logger.info(f"Upload finished: repository='{name}', upload={upload_id}, digest={digest}")
    return blob_created(name, digest)


@app.route("/v2/<path:name>/blobs/uploads/<upload_id>", methods=["DELETE"])
def delete_blob_upload(name, upload_id):
    """Cancel an upload and discard its partial data."""
    validate_repository_name(name)
    if not get_storage().cancel_blob_upload(name, upload_id):
        raise BlobUploadUnknown(f"Upload {upload_id} not found in {name}")
    return Response(status=204)
