"""
Campus Gate Application

Flask service that decides whether a request comes from the university
campus, by source IP range or by GPS distance from the campus reference
point, and keeps an audit trail of every decision.

Routes:
    POST /verify-location     verify the caller (IP range OR haversine distance)
    GET  /api/campus/session  campus-only route behind the location guard
    GET  /access-logs         recent decisions, admin Basic auth
    GET  /healthz, /health    liveness
    GET  /api/docs            Swagger UI

Environment Variables:
    REFERENCE_LATITUDE: Campus reference latitude (required)
    REFERENCE_LONGITUDE: Campus reference longitude (required)
    MAX_DISTANCE_KM: Admission radius in kilometers (required)
    ALLOWED_IP_RANGES: Comma-separated start-end IPv4 ranges
    ADMIN_USERNAME / ADMIN_PASSWORD: Credentials for the access log report
    TRUST_PROXY_HEADERS: Honour X-Forwarded-For from one proxy hop
"""

import atexit
from functools import wraps
from hmac import compare_digest

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config.config_module import (
    MAX_DISTANCE_KM,
    PORT,
    TRUST_PROXY_HEADERS,
    VERIFY_REQUESTS_PER_MINUTE,
)
from config.secret_manager import get_secret
from core.exceptions import AccessDenied, InvalidArgument
from core.gate_handler import (
    access_logs_handler,
    campus_session_handler,
    denial_body,
    get_access_log_writer,
    invalid_argument_body,
    verify_location_handler,
)
from db.database import close_connections, initialize_database
from docs.api_docs import document_api, json_response, register_swagger_ui
from middleware.middleware import apply_middleware, rate_limit_by_ip
from middleware.rate_limiter import configure_limiter, limit_gate_endpoints
from utils.logger_config import setup_logging

DEFAULT_ADMIN_PASSWORD = "password"


# Admin Basic Auth for the access log report
def admin_credentials_valid(username, password):
    """Constant-time check of Basic auth credentials against ADMIN_USERNAME/ADMIN_PASSWORD."""
    expected_username = get_secret("ADMIN_USERNAME", "admin")
    expected_password = get_secret("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)

    if expected_password == DEFAULT_ADMIN_PASSWORD:
        logger.warning("Using default admin password! Please set ADMIN_PASSWORD.")

    username_ok = compare_digest((username or "").encode(), expected_username.encode())
    password_ok = compare_digest((password or "").encode(), expected_password.encode())
    return username_ok and password_ok


def basic_auth_challenge():
    return Response(
        "Access log report requires administrator credentials.\n",
        401,
        {"WWW-Authenticate": 'Basic realm="Campus Gate Admin"'},
    )


def requires_admin(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        auth = request.authorization
        if not auth or not admin_credentials_valid(auth.username, auth.password):
            logger.warning(f"Rejected access log request from {request.remote_addr}")
            return basic_auth_challenge()
        return f(*args, **kwargs)

    return decorated


# Initialize Flask application
app = Flask(__name__)

if TRUST_PROXY_HEADERS:
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

logger = setup_logging()
logger.info("Starting campus gate application...")
logger.info(f"Access log storage mode: {initialize_database()}")

configure_limiter(app)
app = apply_middleware(app)
app = register_swagger_ui(app)


@atexit.register
def _shutdown():
    get_access_log_writer().shutdown()
    close_connections()


@app.route("/healthz", methods=["GET"])
def healthz():
    """Liveness probe."""
    return "OK", 200


@app.route("/health", methods=["GET"])
def health():
    return "OK", 200


@app.route("/verify-location", methods=["POST"])
@rate_limit_by_ip(max_requests=VERIFY_REQUESTS_PER_MINUTE, time_window=60)
def verify_location():
    """
    Admit the caller if its source IP is in a campus range or its
    coordinates are within the allowed distance of campus.
    """
    return verify_location_handler()


@app.route("/api/campus/session", methods=["GET"])
def campus_session():
    """Report the verification that admitted this request."""
    return campus_session_handler()


@app.route("/access-logs", methods=["GET"])
@requires_admin
def access_logs():
    """Most recent access log entries, newest first."""
    return access_logs_handler()


document_api(
    healthz,
    "/healthz",
    ["GET"],
    summary="Check if the application is alive",
    responses={200: json_response("Application is healthy")},
    tags=["System"],
)

document_api(
    verify_location,
    "/verify-location",
    ["POST"],
    summary="Verify caller location",
    description="Verify that the caller is on campus by source IP or GPS distance",
    requestBody={
        "description": "Optional GPS coordinates",
        "required": False,
        "content": {
            "application/json": {
                "schema": {"$ref": "#/components/schemas/LocationVerificationRequest"}
            }
        },
    },
    responses={
        200: json_response("Caller is on campus", "LocationVerificationResponse"),
        400: json_response("Malformed coordinates", "Error"),
        403: json_response("Caller is not on campus", "LocationDenied"),
        429: json_response("Too many requests, rate limit exceeded", "Error"),
    },
    tags=["Location API"],
)

document_api(
    campus_session,
    "/api/campus/session",
    ["GET"],
    summary="Check campus session",
    description="Confirm the caller may use campus-restricted resources",
    parameters=[
        {"name": header, "in": "header", "required": False, "schema": {"type": kind}}
        for header, kind in (
            ("X-Latitude", "number"),
            ("X-Longitude", "number"),
            ("X-Client-Id", "string"),
        )
    ],
    responses={
        200: json_response("Caller is on campus", "LocationVerificationResponse"),
        400: json_response("Malformed coordinate headers", "Error"),
        403: json_response("Caller is not on campus", "LocationDenied"),
    },
    tags=["Location API"],
)

document_api(
    access_logs,
    "/access-logs",
    ["GET"],
    summary="Read the access log",
    description="Most recent location checks, newest first",
    parameters=[
        {"name": "limit", "in": "query", "required": False, "schema": {"type": "integer"}}
    ],
    responses={
        200: json_response(
            "Access log entries",
            {
                "type": "object",
                "properties": {
                    "logs": {
                        "type": "array",
                        "items": {"$ref": "#/components/schemas/AccessLogEntry"},
                    },
                    "count": {"type": "integer"},
                },
            },
        ),
        400: json_response("Invalid limit", "Error"),
        401: json_response("Authentication required"),
    },
    tags=["Admin"],
)


# Location gate outcomes
@app.errorhandler(InvalidArgument)
def invalid_argument_error(e):
    logger.warning(f"Invalid location claim from {request.remote_addr}: {e.errors or e}")
    return jsonify(invalid_argument_body(e)), 400


@app.errorhandler(AccessDenied)
def access_denied_error(e):
    return jsonify(denial_body(e.result, e.max_distance_km or MAX_DISTANCE_KM)), 403


# Fallback messages for HTTP errors raised without a description of their own
HTTP_ERROR_MESSAGES = {
    400: "Invalid request parameters",
    401: "Authentication required",
    403: "You don't have permission to access this resource",
    404: None,
    405: "Method not allowed for this URL",
    429: "Rate limit exceeded. Please try again later.",
    500: "An unexpected error occurred. Please try again later.",
}


def http_error(e):
    """Render an HTTP error as JSON ``{"error", "message"}``."""
    if e.code == 404:
        message = f"The requested URL {request.path} was not found on the server"
    elif e.code >= 500:
        message = HTTP_ERROR_MESSAGES[500]
    else:
        message = e.description or HTTP_ERROR_MESSAGES.get(e.code)
    logger.error(f"{e.code} {e.name}: {request.remote_addr} - {request.path}")
    return jsonify({"error": e.name, "message": message}), e.code


for _code in HTTP_ERROR_MESSAGES:
    app.register_error_handler(_code, http_error)


@app.errorhandler(Exception)
def handle_exception(e):
    if isinstance(e, HTTPException):
        # Redirects and other non-error responses pass through
        return e if e.code is None or e.code < 400 else http_error(e)

    logger.error(f"Unhandled exception: {e}", exc_info=e)
    return (
        jsonify({"error": "Internal Server Error", "message": HTTP_ERROR_MESSAGES[500]}),
        500,
    )


limit_gate_endpoints(app)

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=PORT)
