"""
LatticeShield Web API
=====================
Flask adapter exposing the service facade to the form-processing host.

Routes:
    GET|POST /api/generate-keypair
    POST     /api/encrypt
    POST     /api/decrypt
    POST     /api/reencrypt
    GET|POST /api/monitor
    GET      /api/status
    GET      /api/health

Authentication and transport security are the host's job; this adapter
only maps requests to service calls and CryptoError codes to statuses.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from latticeshield import __version__
from latticeshield.core.config import ShieldConfig
from latticeshield.core.errors import CompositeCryptoError, CryptoError, ErrorCode
from latticeshield.core.logging import configure_root_logger
from latticeshield.service import LatticeShieldService

logger = logging.getLogger("latticeshield.web")

_NO_CACHE = "no-cache, no-store, must-revalidate"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise CryptoError(ErrorCode.INVALID_INPUT, "request body must be a JSON object")
    return data


def _flag(value: Any, default: bool = True) -> bool:
    """Boolean from JSON or a query string (false/0/no are false)."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in ("false", "0", "no", "off")


def create_app(
    service: Optional[LatticeShieldService] = None,
    config: Optional[ShieldConfig] = None,
) -> Flask:
    """
    Build the Flask application.

    Args:
        service: Service facade (built from config if not given)
        config: Configuration (defaults to ShieldConfig.get_instance())
    """
    config = config or (service.config if service is not None else ShieldConfig.get_instance())
    service = service or LatticeShieldService(config=config)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.server.max_content_length
    app.config["LATTICESHIELD"] = service

    cors_origin = config.server.cors_origin

    # ============================================================
    # CORS
    # ============================================================

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = cors_origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        response.headers["Access-Control-Max-Age"] = "3600"
        return response

    @app.route("/api/<path:path>", methods=["OPTIONS"])
    def handle_options(path):
        return app.make_response("")

    # ============================================================
    # ERROR HANDLING
    # ============================================================

    @app.errorhandler(CryptoError)
    def handle_crypto_error(error: CryptoError):
        if error.is_caller_error:
            logger.info("Request rejected: %s", error.code.value)
        else:
            logger.error("Operation failed: %s (%s)", error.code.value, error.detail or "no detail")

        body = error.to_dict()
        body["timestamp"] = _now()
        if isinstance(error, CompositeCryptoError):
            body["fallbackAttempted"] = True
        return jsonify(body), error.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"error": error.name, "code": f"HTTP_{error.code}", "timestamp": _now()}), error.code

    # ============================================================
    # CRYPTO ROUTES
    # ============================================================

    @app.route("/api/generate-keypair", methods=["GET", "POST"])
    def generate_keypair():
        level = request.args.get("security") or request.args.get("level")
        if request.method == "POST" and level is None:
            data = request.get_json(silent=True)
            if isinstance(data, dict):
                level = data.get("securityLevel")

        result = service.generate_keypair(level)
        response = jsonify(result)
        response.headers["Cache-Control"] = _NO_CACHE
        return response

    @app.route("/api/encrypt", methods=["POST"])
    def encrypt():
        data = _json_body()
        result = service.encrypt(
            data.get("data"),
            data.get("publicKey"),
            data.get("algorithm"),
            data.get("securityLevel"),
        )

        response = jsonify(result)
        response.headers["X-Encryption-Algorithm"] = result["metadata"]["algorithm"]
        response.headers["X-Security-Level"] = result["metadata"]["securityLevel"]
        return response

    @app.route("/api/decrypt", methods=["POST"])
    def decrypt():
        data = _json_body()
        encrypted = data.get("encryptedData")
        private_key = data.get("privateKey")
        if not encrypted or not private_key:
            raise CryptoError(ErrorCode.INVALID_INPUT, "missing encryptedData or privateKey")

        response = jsonify(service.decrypt(encrypted, private_key))
        response.headers["Cache-Control"] = _NO_CACHE
        return response

    @app.route("/api/reencrypt", methods=["POST"])
    def reencrypt():
        data = _json_body()
        encrypted = data.get("encryptedData")
        private_key = data.get("privateKey")
        if not encrypted or not private_key:
            raise CryptoError(ErrorCode.INVALID_INPUT, "missing encryptedData or privateKey")

        result = service.reencrypt(
            encrypted,
            private_key,
            data.get("publicKey"),
            data.get("algorithm"),
            data.get("securityLevel"),
        )
        response = jsonify(result)
        response.headers["Cache-Control"] = _NO_CACHE
        response.headers["X-Encryption-Algorithm"] = result["metadata"]["algorithm"]
        response.headers["X-Security-Level"] = result["metadata"]["securityLevel"]
        return response

    # ============================================================
    # MONITORING
    # ============================================================

    @app.route("/api/monitor", methods=["GET", "POST"])
    def monitor():
        started = time.perf_counter()
        if request.method == "POST":
            params = _json_body()
        else:
            params = request.args.to_dict()

        action = params.get("action") or "benchmark"
        level = params.get("securityLevel") or params.get("security")
        if action == "benchmark":
            result = service.benchmark(params.get("iterations"), level)
        elif action == "migration-test":
            result = service.migration_test(
                params.get("entries"),
                level,
                _flag(params.get("verifyIntegrity")),
            )
        else:
            raise CryptoError(ErrorCode.INVALID_INPUT, f"unknown monitoring action: {action}")

        response = jsonify({
            "success": True,
            "action": action,
            "data": result,
            "performance": {
                "processingTimeMs": round((time.perf_counter() - started) * 1000.0, 3),
                "timestamp": _now(),
            },
        })
        response.headers["Cache-Control"] = _NO_CACHE
        return response

    # ============================================================
    # STATUS
    # ============================================================

    @app.route("/api/status", methods=["GET"])
    def status():
        result = service.status()
        health = result["health"]

        response = jsonify(result)
        response.status_code = health["statusCode"]
        response.headers["Cache-Control"] = _NO_CACHE
        response.headers["X-Service-Health"] = health["overall"]
        response.headers["X-OQS-Available"] = str(result["oqs"]["available"]).lower()
        response.headers["X-OQS-Functional"] = str(result["oqs"]["functional"]).lower()
        response.headers["X-RSA-Functional"] = str(result["rsa"]["functional"]).lower()
        return response

    @app.route("/api/health", methods=["GET"])
    def health():
        # Liveness only; /api/status runs the self-tests
        return jsonify({
            "status": "ok",
            "service": config.app.app_name,
            "version": __version__,
            "engine": service.engine.state.value,
            "timestamp": _now(),
        })

    return app


def main() -> None:
    """Run the development server with configured logging."""
    config = ShieldConfig.get_instance()
    log = config.logging
    configure_root_logger(
        log_dir=log.log_dir,
        level=log.level,
        enable_console=log.enable_console,
        enable_file=log.enable_file,
        enable_json=log.enable_json,
    )

    app = create_app(config=config)
    logger.info("Starting %s on %s:%d", config.app.app_name, config.server.host, config.server.port)
    app.run(host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
