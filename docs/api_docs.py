"""
API Documentation Module

This module provides Swagger/OpenAPI documentation for the campus gate endpoints.
It uses flask-swagger-ui to serve the documentation and apispec to generate the specs.
"""

from apispec import APISpec
from apispec.ext.marshmallow import MarshmallowPlugin
from apispec_webframeworks.flask import FlaskPlugin
from flask import Blueprint, jsonify
from flask_swagger_ui import get_swaggerui_blueprint

from utils.logger_config import get_logger

# Configure logger
logger = get_logger(__name__)

# Store endpoint documentation for later processing
endpoint_registry = []

api_docs_blueprint = Blueprint("api_docs", __name__)

SWAGGER_URL = "/api/docs"  # URL for accessing API docs UI
API_URL = "/api/spec"  # URL for accessing OpenAPI spec

swaggerui_blueprint = get_swaggerui_blueprint(
    SWAGGER_URL,
    API_URL,
    config={"app_name": "Campus Gate API Documentation", "layout": "BaseLayout"},
)

COORDINATES_SCHEMA = {
    "type": "object",
    "nullable": True,
    "properties": {
        "latitude": {"type": "number", "format": "float"},
        "longitude": {"type": "number", "format": "float"},
    },
}


def build_spec():
    """
    Build the OpenAPI specification from the registered endpoints.
    Needs an application context for the app the views are registered on.
    """
    spec = APISpec(
        title="Campus Gate API",
        version="1.0.0",
        openapi_version="3.0.2",
        info=dict(description="Campus location verification for the learning-resource portal"),
        plugins=[FlaskPlugin(), MarshmallowPlugin()],
    )

    spec.components.schema(
        "LocationVerificationRequest",
        {
            "type": "object",
            "properties": {
                "latitude": {
                    "type": "number",
                    "format": "float",
                    "minimum": -90,
                    "maximum": 90,
                    "description": "GPS latitude in degrees",
                },
                "longitude": {
                    "type": "number",
                    "format": "float",
                    "minimum": -180,
                    "maximum": 180,
                    "description": "GPS longitude in degrees",
                },
            },
        },
    )

    spec.components.schema(
        "LocationVerificationResponse",
        {
            "type": "object",
            "properties": {
                "verified": {"type": "boolean"},
                "distanceKm": {"type": "number", "nullable": True},
                "method": {"type": "string", "enum": ["ip", "gps"]},
                "details": {
                    "type": "object",
                    "properties": {
                        "ip": {"type": "string", "nullable": True},
                        "coordinates": COORDINATES_SCHEMA,
                        "timestamp": {"type": "string", "format": "date-time"},
                    },
                },
            },
            "required": ["verified"],
        },
    )

    spec.components.schema(
        "LocationDenied",
        {
            "type": "object",
            "properties": {
                "verified": {"type": "boolean"},
                "message": {"type": "string"},
                "details": {
                    "type": "object",
                    "properties": {
                        "ip": {"type": "string", "nullable": True},
                        "coordinates": COORDINATES_SCHEMA,
                        "distanceKm": {"type": "number", "nullable": True},
                        "maxAllowedDistanceKm": {"type": "number"},
                        "timestamp": {"type": "string", "format": "date-time"},
                    },
                },
            },
            "required": ["verified", "message"],
        },
    )

    spec.components.schema(
        "AccessLogEntry",
        {
            "type": "object",
            "properties": {
                "id": {"type": "string"},
                "timestamp": {"type": "string", "format": "date-time"},
                "latitude": {"type": "number", "nullable": True},
                "longitude": {"type": "number", "nullable": True},
                "distance_km": {"type": "number", "nullable": True},
                "allowed": {"type": "boolean"},
                "source_ip": {"type": "string", "nullable": True},
                "method": {"type": "string", "nullable": True},
            },
        },
    )

    spec.components.schema(
        "Error",
        {
            "type": "object",
            "properties": {
                "error": {"type": "string", "description": "Error type"},
                "message": {"type": "string", "description": "Error message"},
            },
            "required": ["error"],
        },
    )

    # FlaskPlugin resolves each view to its URL rule through current_app
    for doc in endpoint_registry:
        try:
            spec.path(view=doc["view"], operations=dict(doc["operations"]))
        except Exception as e:
            logger.error(f"Failed to document endpoint {doc['path']}: {str(e)}")

    return spec


@api_docs_blueprint.route("/spec")
def get_apispec():
    """Generate OpenAPI specification"""
    return jsonify(build_spec().to_dict())


def register_swagger_ui(app):
    """Register Swagger UI with Flask app"""
    app.register_blueprint(swaggerui_blueprint, url_prefix=SWAGGER_URL)
    app.register_blueprint(api_docs_blueprint, url_prefix="/api")
    logger.info("Swagger UI registered at %s", SWAGGER_URL)
    return app


def document_api(view_function, endpoint, methods, **kwargs):
    """
    Document a Flask API endpoint using apispec.

    Args:
        view_function: The Flask view function to document
        endpoint: The endpoint path
        methods: HTTP methods as list (e.g., ['GET', 'POST'])
        **kwargs: OpenAPI operation fields
    """
    operations = {method.lower(): kwargs for method in methods}
    endpoint_registry.append({"view": view_function, "path": endpoint, "operations": operations})


def json_response(description, schema=None):
    """OpenAPI response object with an optional JSON body referencing ``schema``."""
    response = {"description": description}
    if schema is not None:
        if isinstance(schema, str):
            schema = {"$ref": f"#/components/schemas/{schema}"}
        response["content"] = {"application/json": {"schema": schema}}
    return response
